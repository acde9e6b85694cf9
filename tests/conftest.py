import asyncio
from datetime import datetime, timedelta

import pytest

from chainscope.client import ChainScope
from chainscope.datasource.base import ChainAdapter
from chainscope.datasource.registry import ChainRegistry
from chainscope.search.filters import matches_attributes
from chainscope.search.types import (
    AssetAttribute,
    AssetKind,
    AssetMetadata,
    CollectionInfo,
    MarketInfo,
    Ownership,
    Sale,
    TechnicalInfo,
    UnifiedAsset,
)
from chainscope.settings import Settings
from chainscope.verification.types import (
    AssetQueryResult,
    VerificationResult,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def make_asset(
    chain: str,
    local_id: str,
    name: str = "Asset",
    description: str = "",
    attributes: dict | None = None,
    kind: AssetKind = AssetKind.NFT,
    price: float | None = None,
    created_offset_days: int = 0,
    collection_name: str | None = None,
    verified: bool = False,
    owner: str = "0xowner",
) -> UnifiedAsset:
    created = BASE_TIME + timedelta(days=created_offset_days)
    return UnifiedAsset(
        id=f"{chain}:{local_id}",
        chain=chain,
        kind=kind,
        metadata=AssetMetadata(
            name=name,
            description=description,
            attributes=tuple(
                AssetAttribute(trait_type=k, value=v)
                for k, v in (attributes or {}).items()
            ),
        ),
        ownership=Ownership(current_owner=owner),
        collection=(
            CollectionInfo(
                name=collection_name, contract_address="0xcoll", verified=verified
            )
            if collection_name
            else None
        ),
        market=(
            MarketInfo(last_sale=Sale(price=price, currency="ETH"))
            if price is not None
            else None
        ),
        technical=TechnicalInfo(
            contract_address="0xcontract",
            token_id=local_id,
            created_at=created,
            last_activity=created,
        ),
    )


class FixtureChainAdapter(ChainAdapter):
    """
    Deterministic in-memory adapter.

    Fails the first ``fail_times`` calls with ``fail_with`` (every call when
    ``fail_times`` is None), then serves ``assets``.
    """

    def __init__(
        self,
        chain: str,
        assets: list[UnifiedAsset] | None = None,
        access: dict[str, bool] | None = None,
        fail_with: Exception | None = None,
        fail_times: int | None = None,
        configured: bool = True,
        delay: float = 0.0,
    ):
        self._chain = chain
        self.assets = assets or []
        self.access = access or {}
        self.fail_with = fail_with
        self.fail_times = fail_times
        self.configured = configured
        self.delay = delay
        self.calls: list[str] = []

    @property
    def chain(self) -> str:
        return self._chain

    def is_configured(self) -> bool:
        return self.configured

    async def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is None:
            return
        if self.fail_times is None or len(self.calls) <= self.fail_times:
            raise self.fail_with

    async def search_by_owner(self, owner, criteria):
        await self._maybe_fail("search_by_owner")
        return [a for a in self.assets if a.ownership.current_owner == owner]

    async def search_by_collection(self, collection_ref, criteria):
        await self._maybe_fail("search_by_collection")
        return [
            a
            for a in self.assets
            if a.collection is not None and a.collection.name == collection_ref
        ]

    async def search_by_attributes(self, filters, criteria):
        await self._maybe_fail("search_by_attributes")
        return [a for a in self.assets if matches_attributes(a, filters)]

    async def text_search(self, query, criteria):
        await self._maybe_fail("text_search")
        q = query.lower()
        return [
            a
            for a in self.assets
            if q in a.metadata.name.lower()
            or q in a.metadata.description.lower()
            or any(q in str(attr.value).lower() for attr in a.metadata.attributes)
        ]

    async def verify_asset(self, options):
        await self._maybe_fail("verify_asset")
        return VerificationResult(
            has_access=self.access.get(options.asset_id, False),
            chain=self.chain,
            user_address=options.user_address,
        )

    async def query_asset(self, options):
        await self._maybe_fail("query_asset")
        exists = any(a.local_id == options.asset_id for a in self.assets)
        return AssetQueryResult(exists=exists, owner="0xowner" if exists else None)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build_scope(*adapters: ChainAdapter, **settings) -> tuple[ChainScope, RecordingSleep]:
    sleep = RecordingSleep()
    defaults = {
        "max_retries": 0,
        "initial_delay_ms": 100,
        "verification_cache_ttl_seconds": 0,
        "adapter_timeout_seconds": 5,
        "dispatch_timeout_seconds": 5,
    }
    defaults.update(settings)
    scope = ChainScope(
        ChainRegistry(adapters), settings=Settings(**defaults), sleep=sleep
    )
    return scope, sleep


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def three_chains():
    """Ethereum, Sui and Solana adapters with one owned asset each."""
    return [
        FixtureChainAdapter("ethereum", [make_asset("ethereum", "1", name="Eth Ape")]),
        FixtureChainAdapter("sui", [make_asset("sui", "0x2", name="Sui Fish")]),
        FixtureChainAdapter("solana", [make_asset("solana", "So3", name="Sol Cat")]),
    ]
