"""
VerificationCoordinator - ownership/access verification across chains.

Combines:
- FanOutCoordinator for retried, breaker-guarded adapter calls
- VerificationCache for granted results (per-request cache duration)
- RequestDeduplicator so identical concurrent checks share one call
- MetadataStore for stored gating rules
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from chainscope.datasource.fanout import FanOutCoordinator
from chainscope.datastore.store import MetadataStore
from chainscope.services.cache import VerificationCache
from chainscope.services.deduplicator import RequestDeduplicator
from chainscope.services.errors import ChainServiceError
from chainscope.services.taxonomy import ErrorCode, ErrorRecord
from chainscope.verification.types import (
    AssetQueryOptions,
    AssetQueryResult,
    GatingRule,
    GatingType,
    MultiChainVerificationResult,
    VerificationOptions,
    VerificationResult,
    VerificationType,
)

# (primary, secondary results by chain) -> combined decision
AccessPolicy = Callable[[VerificationResult, dict[str, VerificationResult]], bool]

# (user address, chain, rule) -> granted
CustomVerifier = Callable[[str, str, GatingRule], Awaitable[bool]]


def primary_wins(
    primary: VerificationResult, secondary: dict[str, VerificationResult]
) -> bool:
    """The primary chain decides; the others are corroboration only."""
    return primary.has_access


def require_consensus(
    primary: VerificationResult, secondary: dict[str, VerificationResult]
) -> bool:
    return primary.has_access and all(r.has_access for r in secondary.values())


def any_chain(
    primary: VerificationResult, secondary: dict[str, VerificationResult]
) -> bool:
    return primary.has_access or any(r.has_access for r in secondary.values())


def _missing(message: str, **context: Any) -> ChainServiceError:
    return ChainServiceError(
        ErrorRecord.create(ErrorCode.MISSING_PARAMETER, message, **context)
    )


class VerificationCoordinator:
    """
    Verifies asset ownership and gated access.

    Usage:
        coordinator = VerificationCoordinator(fanout, store=store)
        result = await coordinator.verify("ethereum", VerificationOptions(
            user_address="0xabc", asset_id="0xnft:1", cache_duration=300,
        ))

        multi = await coordinator.verify_multi_chain(
            ["ethereum", "polygon"], options, policy=require_consensus
        )

    Adapter failures come back as ``has_access=False`` results carrying the
    ErrorRecord; only unsupported chains and missing parameters raise.
    """

    OPERATION = "verify_asset"

    def __init__(
        self,
        fanout: FanOutCoordinator,
        cache: VerificationCache | None = None,
        deduplicator: RequestDeduplicator | None = None,
        store: MetadataStore | None = None,
        default_cache_ttl: float = 0.0,
        custom_verifiers: dict[str, CustomVerifier] | None = None,
    ):
        self.fanout = fanout
        self.cache = cache or VerificationCache()
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.store = store
        self.default_cache_ttl = default_cache_ttl
        self._custom_verifiers: dict[str, CustomVerifier] = dict(custom_verifiers or {})

    def register_verifier(self, name: str, verifier: CustomVerifier) -> None:
        """Make a custom gating predicate available to ``custom`` rules."""
        self._custom_verifiers[name] = verifier

    # ── Single chain ─────────────────────────────────────────────────────────

    async def verify(self, chain: str, options: VerificationOptions) -> VerificationResult:
        """
        Verify on one chain, serving granted results from cache.

        Raises:
            ChainServiceError: chain-not-supported
        """
        self._require_chain(chain, self.OPERATION)
        options = options.model_copy(update={"chain": chain})

        key = options.cache_key(chain)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = await self.deduplicator.dedupe(
                key, lambda: self._call_adapter(chain, options)
            )
        except ChainServiceError as e:
            return self._failed(chain, options.user_address, e.record)

        return await self._remember(chain, options, result)

    async def _call_adapter(
        self, chain: str, options: VerificationOptions
    ) -> VerificationResult:
        return await self.fanout.call_one(
            chain,
            self.OPERATION,
            lambda adapter: adapter.verify_asset(options),
            {"user_address": options.user_address, "asset_id": options.asset_id},
        )

    async def _remember(
        self, chain: str, options: VerificationOptions, result: VerificationResult
    ) -> VerificationResult:
        ttl = (
            options.cache_duration
            if options.cache_duration is not None
            else self.default_cache_ttl
        )
        if not result.has_access or ttl <= 0:
            return result

        result = result.model_copy(
            update={"expires_at": datetime.now() + timedelta(seconds=ttl)}
        )
        await self.cache.set(options.cache_key(chain), result, ttl)
        return result

    async def query_asset(
        self, chain: str, options: AssetQueryOptions
    ) -> AssetQueryResult:
        """Look up an asset; failures come back as ``exists=False`` with error."""
        operation = "query_asset"
        self._require_chain(chain, operation)
        try:
            return await self.fanout.call_one(
                chain,
                operation,
                lambda adapter: adapter.query_asset(options),
                {"asset_id": options.asset_id},
            )
        except ChainServiceError as e:
            logger.warning(f"[{chain}] query_asset failed: {e.code.value}")
            return AssetQueryResult(exists=False, error=e.record)

    # ── Multi chain ──────────────────────────────────────────────────────────

    async def verify_multi_chain(
        self,
        chains: list[str],
        options: VerificationOptions,
        policy: AccessPolicy = primary_wins,
    ) -> MultiChainVerificationResult:
        """
        Verify concurrently on several chains.

        The first chain is primary, the rest corroborate; ``policy``
        combines them (default: the primary decides).
        """
        chains = list(dict.fromkeys(chains))
        if not chains:
            raise _missing("At least one chain is required")

        results: dict[str, VerificationResult] = {}
        to_dispatch: list[str] = []
        for chain in chains:
            cached = await self.cache.get(options.cache_key(chain))
            if cached is not None:
                results[chain] = cached
            else:
                to_dispatch.append(chain)

        outcomes = await self.fanout.dispatch(
            to_dispatch,
            self.OPERATION,
            lambda adapter: adapter.verify_asset(
                options.model_copy(update={"chain": adapter.chain})
            ),
            {"user_address": options.user_address, "asset_id": options.asset_id},
        )
        for chain, outcome in outcomes.items():
            if outcome.ok:
                results[chain] = await self._remember(
                    chain, options.model_copy(update={"chain": chain}), outcome.value
                )
            else:
                results[chain] = self._failed(chain, options.user_address, outcome.error)

        primary = results[chains[0]]
        secondary = {chain: results[chain] for chain in chains[1:]}
        return MultiChainVerificationResult(
            primary=primary,
            cross_chain=secondary,
            has_access=policy(primary, secondary),
        )

    async def batch_verify(
        self,
        user_address: str,
        items: Iterable[tuple[str, VerificationOptions]],
    ) -> list[VerificationResult]:
        """Verify (chain, options) pairs concurrently for one user, in order."""

        async def verify_one(chain: str, options: VerificationOptions):
            options = options.model_copy(update={"user_address": user_address})
            try:
                return await self.verify(chain, options)
            except ChainServiceError as e:
                return self._failed(chain, user_address, e.record)

        return list(
            await asyncio.gather(*(verify_one(chain, opts) for chain, opts in items))
        )

    # ── Gating ───────────────────────────────────────────────────────────────

    async def verify_access(
        self, user_address: str, chain: str, rule: GatingRule
    ) -> VerificationResult:
        """
        Evaluate a gating rule for a user on one chain.

        Raises:
            ChainServiceError: missing-parameter when the rule is incomplete,
                chain-not-supported for unknown chains
        """
        if rule.type == GatingType.ASSET_OWNERSHIP:
            if not rule.asset_id:
                raise _missing("Asset ownership rule needs an asset_id")
            return await self.verify(
                chain,
                VerificationOptions(
                    user_address=user_address,
                    asset_id=rule.asset_id,
                    contract_address=rule.contract_address,
                    type=VerificationType.ASSET_OWNERSHIP,
                ),
            )

        if rule.type == GatingType.COLLECTION_OWNERSHIP:
            if not rule.collections:
                raise _missing("Collection ownership rule needs collections")
            for collection in rule.collections:
                result = await self.verify(
                    chain,
                    VerificationOptions(
                        user_address=user_address,
                        asset_id=collection,
                        contract_address=collection,
                        type=VerificationType.COLLECTION_OWNERSHIP,
                        minimum_owned=rule.minimum_owned,
                    ),
                )
                if result.has_access:
                    return result
            return self._failed(
                chain,
                user_address,
                ErrorRecord.create(
                    ErrorCode.REQUIREMENT_NOT_MET,
                    "User does not own an asset from any required collection",
                    chain=chain,
                    collections=list(rule.collections),
                ),
            )

        if rule.type == GatingType.TOKEN_BALANCE:
            if not rule.contract_address or rule.minimum_balance is None:
                raise _missing(
                    "Token balance rule needs contract_address and minimum_balance"
                )
            return await self.verify(
                chain,
                VerificationOptions(
                    user_address=user_address,
                    asset_id=rule.contract_address,
                    contract_address=rule.contract_address,
                    type=VerificationType.TOKEN_BALANCE,
                    minimum_balance=rule.minimum_balance,
                ),
            )

        if rule.type == GatingType.MULTI_REQUIREMENT:
            if not rule.requirements:
                raise _missing("Multi-requirement rule needs requirements")
            results = await asyncio.gather(
                *(self.verify_access(user_address, chain, r) for r in rule.requirements)
            )
            granted = [r.has_access for r in results]
            has_access = all(granted) if rule.logic == "AND" else any(granted)
            return VerificationResult(
                has_access=has_access,
                chain=chain,
                user_address=user_address,
                chain_specific={"logic": rule.logic, "requirement_results": granted},
            )

        if not rule.verifier or rule.verifier not in self._custom_verifiers:
            raise _missing(f"Custom verifier '{rule.verifier}' is not registered")
        granted = await self._custom_verifiers[rule.verifier](user_address, chain, rule)
        return VerificationResult(
            has_access=bool(granted),
            chain=chain,
            user_address=user_address,
            chain_specific={"custom_verifier": rule.verifier},
        )

    async def verify_gated(
        self, key: str, user_address: str, chain: str
    ) -> VerificationResult:
        """Evaluate the gating rule stored under ``gating:{key}``."""
        if self.store is None:
            raise ChainServiceError(
                ErrorRecord.create(
                    ErrorCode.INVALID_CONFIGURATION, "No metadata store configured"
                )
            )

        data = await self.store.get(f"gating:{key}")
        if data is None:
            raise _missing(f"No gating rule stored for '{key}'", key=key)

        try:
            rule = GatingRule.model_validate(data)
        except ValueError as e:
            raise ChainServiceError(
                ErrorRecord.create(
                    ErrorCode.INVALID_CONFIGURATION,
                    f"Stored gating rule '{key}' is invalid: {e}",
                    key=key,
                )
            ) from e
        return await self.verify_access(user_address, chain, rule)

    # ── Cache ────────────────────────────────────────────────────────────────

    async def clear_cache(
        self, user_address: str | None = None, chain: str | None = None
    ) -> int:
        return await self.cache.invalidate(user=user_address, chain=chain)

    def get_cache_stats(self) -> dict[str, Any]:
        return {
            **self.cache.get_stats().to_dict(),
            "entries_by_chain": self.cache.entries_by_chain(),
        }

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _require_chain(self, chain: str, operation: str) -> None:
        adapter = self.fanout.registry.get(chain)
        if adapter is None or not adapter.is_configured():
            raise ChainServiceError(self.fanout.unsupported(chain, operation))

    @staticmethod
    def _failed(
        chain: str, user_address: str | None, record: ErrorRecord
    ) -> VerificationResult:
        return VerificationResult(
            has_access=False,
            chain=chain,
            user_address=user_address,
            error=record,
        )
