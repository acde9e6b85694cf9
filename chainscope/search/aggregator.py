"""
Result aggregation: merges per-chain partial results into one SearchResult.
"""

import time
from collections import Counter
from typing import Any, Callable, Iterable

from loguru import logger

from chainscope.search.filters import as_utc, matches_criteria, relevance_score
from chainscope.search.types import (
    Pagination,
    SearchCriteria,
    SearchResult,
    SearchStatistics,
    SortField,
    SortOrder,
    UnifiedAsset,
)
from chainscope.services.taxonomy import ErrorRecord

SORT_KEYS: dict[SortField, Callable[[UnifiedAsset], Any]] = {
    SortField.CREATED_DATE: lambda a: as_utc(a.technical.created_at),
    SortField.LAST_ACTIVITY: lambda a: as_utc(a.technical.last_activity),
    SortField.PRICE: lambda a: a.price,
    SortField.NAME: lambda a: a.metadata.name.casefold(),
    SortField.RARITY: lambda a: a.relevance_score,
}


class ResultAggregator:
    """
    Deduplicates, filters, scores, sorts and paginates merged results.

    Pipeline:
    1. Flatten partial lists in the order given, first occurrence of an id wins
    2. Global filters (price, time, asset type, verified-only)
    3. Relevance scoring when a text query is present
    4. Stable sort on the requested field, ties broken by asset id
    5. Slice [offset, offset + limit)
    6. Statistics over the filtered, pre-pagination set
    """

    def __init__(self, default_limit: int = 20):
        self.default_limit = default_limit

    def merge(self, partials: Iterable[Iterable[UnifiedAsset]]) -> list[UnifiedAsset]:
        """Flatten and deduplicate by chain-qualified id."""
        seen: set[str] = set()
        merged: list[UnifiedAsset] = []
        duplicates = 0
        for partial in partials:
            for asset in partial:
                if asset.id in seen:
                    duplicates += 1
                    continue
                seen.add(asset.id)
                merged.append(asset)

        if duplicates:
            logger.debug(f"Dropped {duplicates} duplicate asset(s)")
        return merged

    def score(self, assets: list[UnifiedAsset], query: str) -> list[UnifiedAsset]:
        return [
            asset.model_copy(update={"relevance_score": relevance_score(asset, query)})
            for asset in assets
        ]

    def sort(
        self, assets: list[UnifiedAsset], field: SortField, order: SortOrder
    ) -> list[UnifiedAsset]:
        """
        Sort deterministically. Assets with no value for the field (no price,
        no relevance score) always go last.
        """
        key = SORT_KEYS[field]
        present = [a for a in assets if key(a) is not None]
        missing = [a for a in assets if key(a) is None]

        # Two passes: the id pass fixes the order of ties, the stable field
        # pass keeps it
        present.sort(key=lambda a: a.id)
        present.sort(key=key, reverse=order == SortOrder.DESC)
        missing.sort(key=lambda a: a.id)
        return present + missing

    def aggregate(
        self,
        partials: Iterable[Iterable[UnifiedAsset]],
        criteria: SearchCriteria,
        chains: Iterable[str] = (),
        failures: dict[str, ErrorRecord] | None = None,
        started_at: float | None = None,
    ) -> SearchResult:
        """
        Build the unified response.

        Args:
            partials: Successful per-chain result lists, in dispatch order
            criteria: Applied criteria (limit already resolved or None)
            chains: Chains that were targeted; each appears in the chain
                distribution, with zero when it contributed nothing
            failures: Per-chain diagnostics to attach
            started_at: time.perf_counter() value at search start

        Returns:
            SearchResult
        """
        started_at = started_at if started_at is not None else time.perf_counter()
        limit = criteria.limit if criteria.limit is not None else self.default_limit

        assets = [a for a in self.merge(partials) if matches_criteria(a, criteria)]
        if criteria.text_search:
            assets = self.score(assets, criteria.text_search)

        assets = self.sort(assets, criteria.sort_by, criteria.sort_order)
        total = len(assets)
        page = assets[criteria.offset : criteria.offset + limit]

        chain_distribution = {chain: 0 for chain in chains}
        chain_distribution.update(Counter(a.chain for a in assets))
        type_distribution = dict(Counter(a.kind.value for a in assets))
        scores = [a.relevance_score for a in assets if a.relevance_score is not None]

        return SearchResult(
            assets=tuple(page),
            total_count=total,
            pagination=Pagination(
                limit=limit,
                offset=criteria.offset,
                has_next=criteria.offset + limit < total,
                has_previous=criteria.offset > 0,
            ),
            statistics=SearchStatistics(
                chain_distribution=chain_distribution,
                type_distribution=type_distribution,
                average_relevance_score=sum(scores) / len(scores) if scores else 0.0,
                search_duration_ms=(time.perf_counter() - started_at) * 1000,
            ),
            applied_filters=criteria.model_copy(update={"limit": limit}),
            failures=dict(failures or {}),
        )
