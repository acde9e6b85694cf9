"""
Chain adapter capability interface.
"""

from abc import ABC, abstractmethod

from chainscope.search.types import AttributeFilter, SearchCriteria, UnifiedAsset
from chainscope.verification.types import (
    AssetQueryOptions,
    AssetQueryResult,
    VerificationOptions,
    VerificationResult,
)


class ChainAdapter(ABC):
    """
    Capability interface every backend network implements.

    All adapters should:
    - Return assets qualified with their own ``chain`` only
    - Keep reads free of side effects
    - Raise (rather than swallow) failures so the coordinator can classify them
    - Report ``is_configured() == False`` when they cannot serve requests;
      such adapters are never dispatched to
    """

    @property
    @abstractmethod
    def chain(self) -> str:
        """Unique identifier for the chain this adapter serves."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the adapter is properly configured."""
        ...

    @abstractmethod
    async def search_by_owner(
        self, owner: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]: ...

    @abstractmethod
    async def search_by_collection(
        self, collection_ref: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]: ...

    @abstractmethod
    async def search_by_attributes(
        self, filters: tuple[AttributeFilter, ...], criteria: SearchCriteria
    ) -> list[UnifiedAsset]: ...

    @abstractmethod
    async def text_search(
        self, query: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]: ...

    @abstractmethod
    async def verify_asset(self, options: VerificationOptions) -> VerificationResult: ...

    @abstractmethod
    async def query_asset(self, options: AssetQueryOptions) -> AssetQueryResult: ...
