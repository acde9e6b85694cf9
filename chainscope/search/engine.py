"""
CrossChainSearchEngine - search operations over every registered chain.
"""

import time

from loguru import logger

from chainscope.datasource.base import ChainAdapter
from chainscope.datasource.fanout import ChainOutcome, FanOutCoordinator
from chainscope.search.aggregator import ResultAggregator
from chainscope.search.types import (
    SearchCriteria,
    SearchResult,
    SortField,
    UnifiedAsset,
)
from chainscope.services.errors import ChainServiceError
from chainscope.services.taxonomy import ErrorCode, ErrorRecord


def _invalid(message: str, **context) -> ChainServiceError:
    return ChainServiceError(
        ErrorRecord.create(ErrorCode.INVALID_CRITERIA, message, **context)
    )


class CrossChainSearchEngine:
    """
    Fans search operations out to chain adapters and aggregates the results.

    Usage:
        engine = CrossChainSearchEngine(fanout, ResultAggregator(default_limit=20))
        result = await engine.find_assets_by_owner(
            "0xabc", SearchCriteria(chains=("ethereum", "sui"))
        )
        if result.failures:
            ...  # partial result, per-chain diagnostics

    Raises ChainServiceError(invalid-criteria) before dispatch for malformed
    criteria, and ChainServiceError(search-failed) only when every targeted
    chain failed.
    """

    def __init__(self, fanout: FanOutCoordinator, aggregator: ResultAggregator):
        self.fanout = fanout
        self.aggregator = aggregator

    @property
    def registry(self):
        return self.fanout.registry

    # ── Operations ───────────────────────────────────────────────────────────

    async def find_assets_by_owner(
        self, owner: str, criteria: SearchCriteria | None = None
    ) -> SearchResult:
        criteria = criteria or SearchCriteria()
        if not owner or not owner.strip():
            raise _invalid("Owner address is required")
        criteria = criteria.model_copy(update={"owner_address": owner})

        return await self._search(
            "search_by_owner",
            criteria,
            lambda adapter: adapter.search_by_owner(owner, criteria),
        )

    async def find_assets_by_collection(
        self,
        collection_ref: str,
        chain: str,
        criteria: SearchCriteria | None = None,
    ) -> SearchResult:
        """Single-chain collection listing; unknown chains are rejected."""
        criteria = criteria or SearchCriteria()
        if not collection_ref or not collection_ref.strip():
            raise _invalid("Collection reference is required")

        adapter = self.registry.get(chain)
        if adapter is None or not adapter.is_configured():
            raise ChainServiceError(
                self.fanout.unsupported(chain, "search_by_collection")
            )

        criteria = criteria.model_copy(
            update={"chains": (chain,), "collections": (collection_ref,)}
        )
        return await self._search(
            "search_by_collection",
            criteria,
            lambda adapter: adapter.search_by_collection(collection_ref, criteria),
        )

    async def text_search(
        self, query: str, criteria: SearchCriteria | None = None
    ) -> SearchResult:
        """Free-text search, ranked by relevance (highest first by default)."""
        criteria = criteria or SearchCriteria()
        if not query or not query.strip():
            raise _invalid("Search query is required")
        criteria = criteria.model_copy(
            update={"text_search": query, "sort_by": SortField.RARITY}
        )

        return await self._search(
            "text_search",
            criteria,
            lambda adapter: adapter.text_search(query, criteria),
        )

    async def advanced_search(self, criteria: SearchCriteria) -> SearchResult:
        """
        Combine every strategy the criteria names: owner, collections,
        attributes, then text, run per chain; duplicates are dropped by the
        aggregator.
        """
        if not (
            criteria.owner_address
            or criteria.collections
            or criteria.attributes
            or criteria.text_search
        ):
            raise _invalid(
                "Advanced search needs an owner, collections, attributes "
                "or a text query"
            )

        async def run_strategies(adapter: ChainAdapter) -> list[UnifiedAsset]:
            assets: list[UnifiedAsset] = []
            if criteria.owner_address:
                assets.extend(
                    await adapter.search_by_owner(criteria.owner_address, criteria)
                )
            for collection in criteria.collections:
                assets.extend(await adapter.search_by_collection(collection, criteria))
            if criteria.attributes:
                assets.extend(
                    await adapter.search_by_attributes(criteria.attributes, criteria)
                )
            if criteria.text_search:
                assets.extend(await adapter.text_search(criteria.text_search, criteria))
            return assets

        return await self._search("advanced_search", criteria, run_strategies)

    # ── Pipeline ─────────────────────────────────────────────────────────────

    def validate(self, criteria: SearchCriteria) -> None:
        """
        Reject criteria that can never match.

        Raises:
            ChainServiceError: invalid-criteria
        """
        if criteria.offset < 0:
            raise _invalid(f"Offset must be >= 0, got {criteria.offset}")
        if criteria.limit is not None and criteria.limit < 1:
            raise _invalid(f"Limit must be >= 1, got {criteria.limit}")

        price = criteria.price_range
        if price is not None:
            if price.min < 0:
                raise _invalid("Price range minimum must be >= 0")
            if price.min > price.max:
                raise _invalid(
                    f"Price range minimum {price.min} exceeds maximum {price.max}"
                )

        time_range = criteria.time_range
        if (
            time_range is not None
            and time_range.start is not None
            and time_range.end is not None
            and time_range.start > time_range.end
        ):
            raise _invalid("Time range start is after its end")

    async def _search(self, operation: str, criteria: SearchCriteria, call) -> SearchResult:
        self.validate(criteria)
        started_at = time.perf_counter()

        chains, unsupported = self.registry.resolve(criteria.chains)
        failures: dict[str, ErrorRecord] = {
            chain: self.fanout.unsupported(chain, operation) for chain in unsupported
        }

        outcomes: dict[str, ChainOutcome] = await self.fanout.dispatch(
            chains, operation, call
        )

        partials = []
        for chain in chains:
            outcome = outcomes[chain]
            if outcome.ok:
                partials.append(outcome.value or [])
            else:
                failures[chain] = outcome.error

        targeted = len(chains) + len(unsupported)
        if targeted and len(failures) == targeted:
            raise ChainServiceError(self._all_failed(operation, failures))

        if failures:
            logger.warning(
                f"{operation}: partial result, failed chains: {sorted(failures)}"
            )

        return self.aggregator.aggregate(
            partials,
            criteria,
            chains=[*chains, *unsupported],
            failures=failures,
            started_at=started_at,
        )

    @staticmethod
    def _all_failed(operation: str, failures: dict[str, ErrorRecord]) -> ErrorRecord:
        first = next(iter(failures.values()))
        return ErrorRecord.create(
            ErrorCode.SEARCH_FAILED,
            f"{operation} failed on every targeted chain ({len(failures)})",
            cause=first,
            operation=operation,
            failures={chain: record.code.value for chain, record in failures.items()},
        )
