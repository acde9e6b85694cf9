"""
ChainScope - the library's outbound facade.

Wires the registry, classifier, circuit breakers, retry executor, fan-out,
search engine and verification coordinator together.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from loguru import logger

from chainscope.datasource.fanout import FanOutCoordinator
from chainscope.datasource.registry import ChainRegistry
from chainscope.datastore.store import InMemoryMetadataStore, MetadataStore
from chainscope.search.aggregator import ResultAggregator
from chainscope.search.engine import CrossChainSearchEngine
from chainscope.search.types import SearchCriteria, SearchResult
from chainscope.services.cache import VerificationCache
from chainscope.services.circuit_breaker import CircuitBreakerRegistry
from chainscope.services.classifier import ErrorClassifier
from chainscope.services.deduplicator import RequestDeduplicator
from chainscope.services.retry import RetryExecutor
from chainscope.settings import Settings, global_settings
from chainscope.verification.coordinator import (
    AccessPolicy,
    VerificationCoordinator,
    primary_wins,
)
from chainscope.verification.types import (
    AssetQueryOptions,
    AssetQueryResult,
    GatingRule,
    MultiChainVerificationResult,
    VerificationOptions,
    VerificationResult,
)


class ChainScope:
    """
    Cross-chain asset search and verification.

    Usage:
        async with ChainScope.from_settings() as scope:
            result = await scope.find_assets_by_owner(
                "0xabc", SearchCriteria(chains=("ethereum", "sui"))
            )
            for asset in result.assets:
                print(asset.id, asset.metadata.name)

        # With explicit adapters
        scope = ChainScope(ChainRegistry([MyEthereumAdapter()]))
    """

    def __init__(
        self,
        registry: ChainRegistry,
        settings: Settings | None = None,
        store: MetadataStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or global_settings
        self.registry = registry
        self.store = store or InMemoryMetadataStore()

        self.classifier = ErrorClassifier(chain_families=registry.families)
        self.breakers = CircuitBreakerRegistry(
            self.settings.circuit_breaker_config(), clock=clock
        )
        self.retry_executor = RetryExecutor(
            self.classifier,
            self.breakers,
            default_policy=self.settings.retry_policy(),
            sleep=sleep,
        )
        self.fanout = FanOutCoordinator(
            registry,
            self.retry_executor,
            adapter_timeout=self.settings.adapter_timeout_seconds,
            dispatch_timeout=self.settings.dispatch_timeout_seconds,
        )
        self.search_engine = CrossChainSearchEngine(
            self.fanout, ResultAggregator(self.settings.default_page_limit)
        )
        self.verifier = VerificationCoordinator(
            self.fanout,
            cache=VerificationCache(clock=clock, debug=self.settings.debug),
            deduplicator=RequestDeduplicator(debug=self.settings.debug),
            store=self.store,
            default_cache_ttl=self.settings.verification_cache_ttl_seconds,
        )

        logger.info(f"ChainScope ready with chains: {registry.configured_chains()}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        store: MetadataStore | None = None,
    ) -> "ChainScope":
        """Build adapters from the chain topology file named in settings."""
        settings = settings or global_settings
        registry = ChainRegistry.from_config(settings.chains_config_path)
        return cls(registry, settings=settings, store=store)

    # ── Search ───────────────────────────────────────────────────────────────

    async def find_assets_by_owner(
        self, owner: str, criteria: SearchCriteria | None = None
    ) -> SearchResult:
        return await self.search_engine.find_assets_by_owner(owner, criteria)

    async def find_assets_by_collection(
        self,
        collection_ref: str,
        chain: str,
        criteria: SearchCriteria | None = None,
    ) -> SearchResult:
        return await self.search_engine.find_assets_by_collection(
            collection_ref, chain, criteria
        )

    async def text_search(
        self, query: str, criteria: SearchCriteria | None = None
    ) -> SearchResult:
        return await self.search_engine.text_search(query, criteria)

    async def advanced_search(self, criteria: SearchCriteria) -> SearchResult:
        return await self.search_engine.advanced_search(criteria)

    # ── Verification ─────────────────────────────────────────────────────────

    async def verify_asset(
        self, chain: str, options: VerificationOptions
    ) -> VerificationResult:
        return await self.verifier.verify(chain, options)

    async def verify_multi_chain(
        self,
        chains: list[str],
        options: VerificationOptions,
        policy: AccessPolicy = primary_wins,
    ) -> MultiChainVerificationResult:
        return await self.verifier.verify_multi_chain(chains, options, policy)

    async def verify_access(
        self, user_address: str, chain: str, rule: GatingRule
    ) -> VerificationResult:
        return await self.verifier.verify_access(user_address, chain, rule)

    async def verify_gated(
        self, key: str, user_address: str, chain: str
    ) -> VerificationResult:
        return await self.verifier.verify_gated(key, user_address, chain)

    async def save_gating_rule(self, key: str, rule: GatingRule) -> None:
        """Store a rule for later ``verify_gated`` calls."""
        await self.store.put(f"gating:{key}", rule.model_dump(mode="json"))

    async def batch_verify(
        self, user_address: str, items: list[tuple[str, VerificationOptions]]
    ) -> list[VerificationResult]:
        return await self.verifier.batch_verify(user_address, items)

    async def query_asset(
        self, chain: str, options: AssetQueryOptions
    ) -> AssetQueryResult:
        return await self.verifier.query_asset(chain, options)

    async def clear_cache(
        self, user_address: str | None = None, chain: str | None = None
    ) -> int:
        return await self.verifier.clear_cache(user_address, chain)

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of all chains and resilience components."""
        return {
            "chains": self.registry.get_status(),
            "circuit_breakers": self.breakers.get_all_status(),
            "open_circuits": self.breakers.get_open_circuits(),
            "cache": self.verifier.get_cache_stats(),
            "deduplicator": self.verifier.deduplicator.get_stats().to_dict(),
            "errors": self.classifier.get_error_stats(),
        }

    async def close(self) -> None:
        """Close adapters and cancel in-flight verifications."""
        await self.verifier.deduplicator.cancel_all()
        await self.registry.close()
        logger.debug("ChainScope closed")

    async def __aenter__(self) -> "ChainScope":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
