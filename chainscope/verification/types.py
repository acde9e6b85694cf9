"""
Verification types using Pydantic models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from chainscope.services.cache import VerificationCache
from chainscope.services.taxonomy import ErrorRecord


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class VerificationType(str, Enum):
    ASSET_OWNERSHIP = "asset_ownership"
    TOKEN_BALANCE = "token_balance"
    COLLECTION_OWNERSHIP = "collection_ownership"
    CUSTOM = "custom"


class GatingType(str, Enum):
    ASSET_OWNERSHIP = "asset_ownership"
    COLLECTION_OWNERSHIP = "collection_ownership"
    TOKEN_BALANCE = "token_balance"
    MULTI_REQUIREMENT = "multi_requirement"
    CUSTOM = "custom"


class GatingRule(_Frozen):
    """
    Access rule evaluated against one chain.

    - asset_ownership: own ``asset_id`` (under ``contract_address``)
    - collection_ownership: own at least ``minimum_owned`` from any of ``collections``
    - token_balance: hold ``minimum_balance`` of ``contract_address``
    - multi_requirement: combine ``requirements`` with ``logic``
    - custom: delegate to the named verifier registered on the coordinator
    """

    type: GatingType
    asset_id: str | None = None
    contract_address: str | None = None
    collections: tuple[str, ...] = ()
    minimum_owned: int = 1
    minimum_balance: float | None = None
    logic: Literal["AND", "OR"] = "AND"
    requirements: tuple["GatingRule", ...] = ()
    verifier: str | None = None


class VerificationOptions(_Frozen):
    """Asset verification request."""

    user_address: str
    asset_id: str
    contract_address: str | None = None
    chain: str | None = None
    type: VerificationType = VerificationType.ASSET_OWNERSHIP
    token_id: str | None = None
    minimum_balance: float | None = None
    minimum_owned: int = 1
    gating_rule: GatingRule | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    cache_duration: float | None = None  # seconds; cache successful results

    def cache_key(self, chain: str) -> str:
        return VerificationCache.make_key(
            chain,
            self.user_address,
            self.asset_id,
            self.type.value,
            self.contract_address,
            self.token_id,
            self.minimum_balance,
            self.minimum_owned,
        )


class Balance(_Frozen):
    amount: float
    decimals: int = 0
    symbol: str = ""


class VerificationResult(_Frozen):
    """Outcome of verifying one asset on one chain."""

    has_access: bool
    chain: str
    user_address: str | None = None
    asset_metadata: dict[str, Any] | None = None
    balance: Balance | None = None
    verified_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime | None = None
    chain_specific: dict[str, Any] = Field(default_factory=dict)
    error: ErrorRecord | None = None


class MultiChainVerificationResult(_Frozen):
    """Primary result, secondary corroboration, and the combined decision."""

    primary: VerificationResult
    cross_chain: dict[str, VerificationResult] = Field(default_factory=dict)
    has_access: bool


class AssetQueryOptions(_Frozen):
    chain: str
    contract_address: str
    asset_id: str
    params: dict[str, Any] = Field(default_factory=dict)


class AssetQueryResult(_Frozen):
    exists: bool
    owner: str | None = None
    metadata: dict[str, Any] | None = None
    content_hashes: tuple[str, ...] = ()
    queried_at: datetime = Field(default_factory=datetime.now)
    error: ErrorRecord | None = None
