"""
Search types using Pydantic models.

All models are frozen: criteria and assets are passed by value through the
fan-out and aggregation pipeline and never mutated in place.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chainscope.services.taxonomy import ErrorRecord


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class AssetKind(str, Enum):
    NFT = "nft"
    TOKEN = "token"
    COLLECTIBLE = "collectible"


class SortField(str, Enum):
    CREATED_DATE = "created_date"
    LAST_ACTIVITY = "last_activity"
    PRICE = "price"
    NAME = "name"
    RARITY = "rarity"  # relevance score


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AttributeOperator(str, Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


# ── Criteria ─────────────────────────────────────────────────────────────────


class AttributeFilter(_Frozen):
    """Trait filter, e.g. Rarity == Legendary or Level > 50."""

    trait_type: str
    value: str | int | float
    operator: AttributeOperator = AttributeOperator.EQUALS


class PriceRange(_Frozen):
    min: float
    max: float
    currency: str = ""


class TimeRange(_Frozen):
    """Bounds on an asset's creation time; either side may be open."""

    start: datetime | None = None
    end: datetime | None = None


class SearchCriteria(_Frozen):
    """Search criteria for cross-chain asset discovery."""

    chains: tuple[str, ...] = ()  # empty = all configured chains
    owner_address: str | None = None
    collections: tuple[str, ...] = ()
    asset_types: tuple[AssetKind, ...] = ()
    attributes: tuple[AttributeFilter, ...] = ()
    text_search: str | None = None
    price_range: PriceRange | None = None
    verified_only: bool = False
    time_range: TimeRange | None = None
    sort_by: SortField = SortField.CREATED_DATE
    sort_order: SortOrder = SortOrder.DESC
    limit: int | None = None  # None = configured default page size
    offset: int = 0


# ── Assets ───────────────────────────────────────────────────────────────────


class AssetAttribute(_Frozen):
    trait_type: str
    value: str | int | float
    display_type: str | None = None


class AssetMetadata(_Frozen):
    """Unified metadata, independent of the chain's native format."""

    name: str = "Unnamed Asset"
    description: str = ""
    image: str = ""
    attributes: tuple[AssetAttribute, ...] = ()
    external_url: str | None = None
    animation_url: str | None = None
    background_color: str | None = None
    creator: str | None = None
    original_format: dict[str, Any] = Field(default_factory=dict)


class Ownership(_Frozen):
    current_owner: str
    previous_owners: tuple[str, ...] = ()
    transfer_count: int | None = None


class Price(_Frozen):
    amount: float
    currency: str


class CollectionInfo(_Frozen):
    name: str
    contract_address: str
    verified: bool = False
    floor_price: Price | None = None
    total_supply: int | None = None


class Sale(_Frozen):
    price: float
    currency: str
    date: datetime | None = None
    marketplace: str = ""


class Listing(_Frozen):
    marketplace: str
    price: float
    currency: str
    url: str = ""


class ValueEstimate(_Frozen):
    amount: float
    currency: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class MarketInfo(_Frozen):
    last_sale: Sale | None = None
    listings: tuple[Listing, ...] = ()
    estimated_value: ValueEstimate | None = None


class TechnicalInfo(_Frozen):
    contract_address: str
    token_id: str | None = None
    token_standard: str = ""
    created_at: datetime
    last_activity: datetime
    transaction_hash: str = ""


class UnifiedAsset(_Frozen):
    """
    One asset from one chain.

    ``id`` is always chain-qualified ("{chain}:{local id}") so it is unique
    across every chain in a response.
    """

    id: str
    chain: str
    kind: AssetKind = AssetKind.NFT
    metadata: AssetMetadata
    ownership: Ownership
    collection: CollectionInfo | None = None
    market: MarketInfo | None = None
    technical: TechnicalInfo
    relevance_score: float | None = None

    @model_validator(mode="after")
    def _check_chain_qualified_id(self) -> "UnifiedAsset":
        if not self.id.startswith(f"{self.chain}:") or self.id == f"{self.chain}:":
            raise ValueError(
                f"asset id '{self.id}' must be qualified with chain '{self.chain}'"
            )
        return self

    @property
    def local_id(self) -> str:
        return self.id[len(self.chain) + 1 :]

    @property
    def price(self) -> float | None:
        """Last sale price, falling back to the estimated value."""
        if self.market is None:
            return None
        if self.market.last_sale is not None:
            return self.market.last_sale.price
        if self.market.estimated_value is not None:
            return self.market.estimated_value.amount
        return None


# ── Results ──────────────────────────────────────────────────────────────────


class Pagination(_Frozen):
    limit: int
    offset: int
    has_next: bool
    has_previous: bool


class SearchStatistics(_Frozen):
    chain_distribution: dict[str, int] = Field(default_factory=dict)
    type_distribution: dict[str, int] = Field(default_factory=dict)
    average_relevance_score: float = 0.0
    search_duration_ms: float = 0.0


class SearchResult(_Frozen):
    """Search result with pagination, statistics and per-chain diagnostics."""

    assets: tuple[UnifiedAsset, ...] = ()
    total_count: int = 0
    pagination: Pagination
    statistics: SearchStatistics
    applied_filters: SearchCriteria
    failures: dict[str, ErrorRecord] = Field(default_factory=dict)

    @property
    def failed_chains(self) -> list[str]:
        return sorted(self.failures)
