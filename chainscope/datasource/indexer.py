"""
REST indexer adapter.

Serves one chain from an HTTP indexer exposing:

    GET  /owners/{owner}/assets
    GET  /collections/{collection}/assets
    GET  /assets/search?q=...
    GET  /assets/search?trait.{type}={value}
    POST /verify
    GET  /assets/{contract}/{asset_id}

Asset payloads carry chain-native metadata, normalized here with
MetadataNormalizer.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
from loguru import logger

from chainscope.datasource.base import ChainAdapter
from chainscope.datasource.normalizer import MetadataNormalizer
from chainscope.datasource.registry import ChainConfig
from chainscope.search.filters import matches_attributes
from chainscope.search.types import (
    AssetKind,
    AttributeFilter,
    AttributeOperator,
    CollectionInfo,
    Listing,
    MarketInfo,
    Ownership,
    Price,
    Sale,
    SearchCriteria,
    TechnicalInfo,
    UnifiedAsset,
    ValueEstimate,
)
from chainscope.services.errors import (
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from chainscope.verification.types import (
    AssetQueryOptions,
    AssetQueryResult,
    Balance,
    VerificationOptions,
    VerificationResult,
)

# Indexer-side page size; final pagination happens after aggregation
FETCH_LIMIT = 200

# Stand-in creation time for items that carry none, so ordering stays stable
UNKNOWN_TIME = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_retry_after(value: str | None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable Retry-After: {value!r}")
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class IndexerChainAdapter(ChainAdapter):
    """
    ChainAdapter over a per-chain REST indexer.

    Usage:
        adapter = IndexerChainAdapter(ChainConfig(
            name="ethereum", family="evm", base_url="https://indexer.example.com/eth",
        ))
        assets = await adapter.search_by_owner("0xabc", SearchCriteria())
        await adapter.close()
    """

    def __init__(
        self,
        config: ChainConfig,
        http_client: httpx.AsyncClient | None = None,
        normalizer: MetadataNormalizer | None = None,
    ):
        self.config = config
        self.normalizer = normalizer or MetadataNormalizer()
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def chain(self) -> str:
        return self.config.name

    def is_configured(self) -> bool:
        return bool(self.config.enabled and self.config.base_url)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            headers = {}
            api_key = self.config.resolved_api_key()
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                headers=headers,
                follow_redirects=True,
            )
        return self._http_client

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        method: str = "GET",
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Execute one indexer request.

        Raises:
            RequestTimeoutError: on transport timeout
            RateLimitError: on HTTP 429
            ServiceUnavailableError: on HTTP 5xx
            httpx.HTTPStatusError: on other HTTP errors (classified by status)
            httpx.RequestError: on connection failures
        """
        client = await self._get_http_client()
        url = f"{self.config.base_url.rstrip('/')}{path}"

        try:
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.chain, self.config.timeout) from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                retry_after = _parse_retry_after(e.response.headers.get("Retry-After"))
                raise RateLimitError(self.chain, retry_after) from e
            if status >= 500:
                raise ServiceUnavailableError(
                    f"HTTP {status}: {e.response.text[:200]}", service_id=self.chain
                ) from e
            raise

    # ── Search ───────────────────────────────────────────────────────────────

    async def search_by_owner(
        self, owner: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]:
        data = await self._request(
            f"/owners/{owner}/assets", params=self._base_params(criteria)
        )
        return self._filter(self._transform_assets(data), criteria)

    async def search_by_collection(
        self, collection_ref: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]:
        data = await self._request(
            f"/collections/{collection_ref}/assets",
            params=self._base_params(criteria),
        )
        return self._filter(self._transform_assets(data), criteria)

    async def search_by_attributes(
        self, filters: tuple[AttributeFilter, ...], criteria: SearchCriteria
    ) -> list[UnifiedAsset]:
        params = self._base_params(criteria)
        # Only equality filters are pushed down; the rest are applied locally
        for f in filters:
            if f.operator == AttributeOperator.EQUALS:
                params[f"trait.{f.trait_type}"] = str(f.value)
        if filters and not any(f.operator == AttributeOperator.EQUALS for f in filters):
            logger.warning(
                f"[{self.chain}] No attribute filter can be sent to the indexer; "
                f"filtering only the first {FETCH_LIMIT} results locally"
            )

        data = await self._request("/assets/search", params=params)
        assets = [
            asset
            for asset in self._transform_assets(data)
            if matches_attributes(asset, filters)
        ]
        return self._filter(assets, criteria)

    async def text_search(
        self, query: str, criteria: SearchCriteria
    ) -> list[UnifiedAsset]:
        params = self._base_params(criteria)
        params["q"] = query
        data = await self._request("/assets/search", params=params)
        return self._filter(self._transform_assets(data), criteria)

    def _base_params(self, criteria: SearchCriteria) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": FETCH_LIMIT}
        if criteria.verified_only:
            params["verified"] = "true"
        return params

    def _filter(
        self, assets: list[UnifiedAsset], criteria: SearchCriteria
    ) -> list[UnifiedAsset]:
        # Indexers may ignore the verified hint
        if criteria.verified_only:
            assets = [a for a in assets if a.collection and a.collection.verified]
        return assets

    # ── Verification ─────────────────────────────────────────────────────────

    async def verify_asset(self, options: VerificationOptions) -> VerificationResult:
        data = await self._request(
            "/verify",
            method="POST",
            json_data={
                "user_address": options.user_address,
                "asset_id": options.asset_id,
                "contract_address": options.contract_address,
                "token_id": options.token_id,
                "type": options.type.value,
                "minimum_balance": options.minimum_balance,
                "minimum_owned": options.minimum_owned,
            },
        )

        balance = data.get("balance")
        return VerificationResult(
            has_access=bool(data.get("has_access")),
            chain=self.chain,
            user_address=options.user_address,
            asset_metadata=data.get("asset_metadata"),
            balance=Balance(**balance) if balance else None,
            chain_specific=data.get("chain_specific") or {},
        )

    async def query_asset(self, options: AssetQueryOptions) -> AssetQueryResult:
        try:
            data = await self._request(
                f"/assets/{options.contract_address}/{options.asset_id}",
                params=options.params or None,
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return AssetQueryResult(exists=False)
            raise

        return AssetQueryResult(
            exists=bool(data.get("exists", True)),
            owner=data.get("owner"),
            metadata=data.get("metadata"),
            content_hashes=tuple(data.get("content_hashes") or ()),
        )

    # ── Transformation ───────────────────────────────────────────────────────

    def _transform_assets(self, data: dict[str, Any]) -> list[UnifiedAsset]:
        """Transform an indexer response to UnifiedAsset models."""
        assets = []
        for item in data.get("assets") or []:
            try:
                assets.append(self._transform_asset(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[{self.chain}] Skipping malformed asset: {e}")

        logger.debug(f"[{self.chain}] Transformed {len(assets)} asset(s)")
        return assets

    def _transform_asset(self, item: dict[str, Any]) -> UnifiedAsset:
        local_id = str(item["id"])
        created_at = item.get("created_at") or item.get("last_activity")
        last_activity = item.get("last_activity") or created_at
        if created_at is None:
            created_at = last_activity = UNKNOWN_TIME

        collection = item.get("collection")
        collection_info = None
        if collection:
            floor = collection.get("floor_price")
            collection_info = CollectionInfo(
                name=collection.get("name", ""),
                contract_address=collection.get(
                    "contract_address", item.get("contract_address", "")
                ),
                verified=bool(collection.get("verified", False)),
                floor_price=Price(**floor) if floor else None,
                total_supply=collection.get("total_supply"),
            )

        market = None
        if item.get("last_sale") or item.get("listings") or item.get("estimated_value"):
            market = MarketInfo(
                last_sale=Sale(**item["last_sale"]) if item.get("last_sale") else None,
                listings=tuple(Listing(**l) for l in item.get("listings") or ()),
                estimated_value=(
                    ValueEstimate(**item["estimated_value"])
                    if item.get("estimated_value")
                    else None
                ),
            )

        return UnifiedAsset(
            id=f"{self.chain}:{local_id}",
            chain=self.chain,
            kind=AssetKind(item.get("kind", AssetKind.NFT.value)),
            metadata=self.normalizer.normalize(
                item.get("metadata") or {},
                self.config.family,
                creator=item.get("creator"),
            ),
            ownership=Ownership(
                current_owner=item.get("owner", ""),
                previous_owners=tuple(item.get("previous_owners") or ()),
                transfer_count=item.get("transfer_count"),
            ),
            collection=collection_info,
            market=market,
            technical=TechnicalInfo(
                contract_address=item.get("contract_address", ""),
                token_id=item.get("token_id"),
                token_standard=item.get("token_standard", ""),
                created_at=created_at,
                last_activity=last_activity,
                transaction_hash=item.get("transaction_hash", ""),
            ),
        )

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
