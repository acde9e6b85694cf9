"""
Asset filter predicates and relevance scoring.
"""

from datetime import datetime, timezone

from chainscope.search.types import (
    AttributeFilter,
    AttributeOperator,
    SearchCriteria,
    UnifiedAsset,
)

# Relevance weights for text search
NAME_MATCH_SCORE = 100
EXACT_NAME_BONUS = 50
DESCRIPTION_MATCH_SCORE = 30
ATTRIBUTE_MATCH_SCORE = 20
COLLECTION_MATCH_SCORE = 40


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so mixed sources stay comparable
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _as_number(value: str | int | float) -> float | None:
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except ValueError:
        return None


def matches_attribute_filter(asset: UnifiedAsset, attr_filter: AttributeFilter) -> bool:
    """True when any of the asset's attributes satisfies the filter."""
    for attr in asset.metadata.attributes:
        if attr.trait_type != attr_filter.trait_type:
            continue

        op = attr_filter.operator
        if op == AttributeOperator.EQUALS:
            if str(attr.value) == str(attr_filter.value):
                return True
        elif op == AttributeOperator.CONTAINS:
            if str(attr_filter.value).lower() in str(attr.value).lower():
                return True
        else:
            left = _as_number(attr.value)
            right = _as_number(attr_filter.value)
            if left is None or right is None:
                continue
            if op == AttributeOperator.GREATER_THAN and left > right:
                return True
            if op == AttributeOperator.LESS_THAN and left < right:
                return True
    return False


def matches_attributes(
    asset: UnifiedAsset, filters: tuple[AttributeFilter, ...]
) -> bool:
    """All filters must match (AND)."""
    return all(matches_attribute_filter(asset, f) for f in filters)


def matches_criteria(asset: UnifiedAsset, criteria: SearchCriteria) -> bool:
    """
    Apply the global filters: price range, time range, asset types and
    verified-only. Attribute filters are applied by the adapters.
    """
    if criteria.price_range is not None:
        price = asset.price
        if price is None:
            return False
        if not criteria.price_range.min <= price <= criteria.price_range.max:
            return False

    if criteria.time_range is not None:
        created = as_utc(asset.technical.created_at)
        start, end = criteria.time_range.start, criteria.time_range.end
        if start is not None and created < as_utc(start):
            return False
        if end is not None and created > as_utc(end):
            return False

    if criteria.asset_types and asset.kind not in criteria.asset_types:
        return False

    if criteria.verified_only:
        if asset.collection is None or not asset.collection.verified:
            return False

    return True


def relevance_score(asset: UnifiedAsset, query: str) -> float:
    """Additive, case-insensitive text relevance."""
    q = query.lower()
    score = 0.0

    name = asset.metadata.name.lower()
    if q in name:
        score += NAME_MATCH_SCORE
        if name == q:
            score += EXACT_NAME_BONUS

    if q in asset.metadata.description.lower():
        score += DESCRIPTION_MATCH_SCORE

    for attr in asset.metadata.attributes:
        if q in attr.trait_type.lower() or q in str(attr.value).lower():
            score += ATTRIBUTE_MATCH_SCORE

    if asset.collection is not None and q in asset.collection.name.lower():
        score += COLLECTION_MATCH_SCORE

    return score
