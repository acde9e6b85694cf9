"""
Cross-chain search: criteria, unified asset model and result types.

The engine and aggregator live in ``chainscope.search.engine`` and
``chainscope.search.aggregator``.
"""

from chainscope.search.types import (
    AssetKind,
    AttributeFilter,
    AttributeOperator,
    PriceRange,
    SearchCriteria,
    SearchResult,
    SortField,
    SortOrder,
    TimeRange,
    UnifiedAsset,
)

__all__ = [
    "AssetKind",
    "AttributeFilter",
    "AttributeOperator",
    "PriceRange",
    "SearchCriteria",
    "SearchResult",
    "SortField",
    "SortOrder",
    "TimeRange",
    "UnifiedAsset",
]
