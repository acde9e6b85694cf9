import asyncio

import httpx
import pytest
from conftest import FixtureChainAdapter, build_scope
from loguru import logger

from chainscope.datasource.indexer import UNKNOWN_TIME, IndexerChainAdapter
from chainscope.datasource.registry import ChainConfig
from chainscope.search.types import (
    AttributeFilter,
    AttributeOperator,
    SearchCriteria,
)
from chainscope.services.errors import RateLimitError, ServiceUnavailableError
from chainscope.services.taxonomy import ErrorCode
from chainscope.verification.types import AssetQueryOptions, VerificationOptions

BASE_URL = "https://indexer.test/eth"


def asset_item(asset_id, name="Ape", level=1, verified=True):
    return {
        "id": asset_id,
        "kind": "nft",
        "owner": "0xowner",
        "metadata": {
            "name": name,
            "image": "https://img.test/a.png",
            "attributes": [{"trait_type": "Level", "value": level}],
        },
        "collection": {"name": "Apes", "contract_address": "0xapes", "verified": verified},
        "last_sale": {"price": 1.5, "currency": "ETH"},
        "contract_address": "0xapes",
        "token_id": asset_id,
        "created_at": "2024-01-01T00:00:00Z",
    }


def make_adapter(handler, family="evm"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = ChainConfig(name="ethereum", family=family, base_url=BASE_URL)
    return IndexerChainAdapter(config, http_client=client)


class TestSearch:
    def test_owner_assets_transformed(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"assets": [asset_item("1"), {"bad": 1}]})

        adapter = make_adapter(handler)
        assets = asyncio.run(adapter.search_by_owner("0xowner", SearchCriteria()))

        assert seen[0].url.path == "/eth/owners/0xowner/assets"
        assert [a.id for a in assets] == ["ethereum:1"]
        asset = assets[0]
        assert asset.metadata.name == "Ape"
        assert asset.collection.verified
        assert asset.market.last_sale.price == 1.5
        assert asset.technical.created_at.year == 2024

    def test_attribute_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"assets": [asset_item("1", level=10), asset_item("2", level=90)]},
            )

        adapter = make_adapter(handler)
        filters = (
            AttributeFilter(trait_type="Kind", value="ape"),
            AttributeFilter(
                trait_type="Level", value=50, operator=AttributeOperator.GREATER_THAN
            ),
        )

        assets = asyncio.run(adapter.search_by_attributes(filters[1:], SearchCriteria()))

        assert [a.id for a in assets] == ["ethereum:2"]
        assert "trait.Level" not in seen[0].url.params

        asyncio.run(adapter.search_by_attributes(filters[:1], SearchCriteria()))
        assert seen[1].url.params["trait.Kind"] == "ape"

    def test_missing_created_at_is_stable(self):
        item = asset_item("1")
        del item["created_at"]
        adapter = make_adapter(
            lambda request: httpx.Response(200, json={"assets": [item]})
        )

        async def run():
            first = await adapter.search_by_owner("0xowner", SearchCriteria())
            second = await adapter.search_by_owner("0xowner", SearchCriteria())
            return first[0].technical, second[0].technical

        first, second = asyncio.run(run())

        assert first.created_at == second.created_at == UNKNOWN_TIME
        assert first.last_activity == UNKNOWN_TIME

    def test_warns_when_no_filter_is_pushed_down(self):
        adapter = make_adapter(lambda request: httpx.Response(200, json={"assets": []}))
        messages = []
        handler_id = logger.add(messages.append, level="WARNING")
        try:
            asyncio.run(
                adapter.search_by_attributes(
                    (
                        AttributeFilter(
                            trait_type="Level",
                            value=50,
                            operator=AttributeOperator.LESS_THAN,
                        ),
                    ),
                    SearchCriteria(),
                )
            )
            asyncio.run(
                adapter.search_by_attributes(
                    (AttributeFilter(trait_type="Fur", value="Gold"),), SearchCriteria()
                )
            )
        finally:
            logger.remove(handler_id)

        assert len(messages) == 1
        assert "first 200 results" in messages[0]

    def test_verified_only_applied_locally(self):
        def handler(request):
            assert request.url.params["verified"] == "true"
            return httpx.Response(
                200,
                json={"assets": [asset_item("1"), asset_item("2", verified=False)]},
            )

        adapter = make_adapter(handler)
        assets = asyncio.run(
            adapter.text_search("ape", SearchCriteria(verified_only=True))
        )
        assert [a.id for a in assets] == ["ethereum:1"]


class TestErrors:
    def test_rate_limit(self):
        adapter = make_adapter(
            lambda request: httpx.Response(429, headers={"Retry-After": "3"})
        )
        with pytest.raises(RateLimitError) as exc_info:
            asyncio.run(adapter.search_by_owner("0xowner", SearchCriteria()))
        assert exc_info.value.retry_after == 3.0

    def test_rate_limit_with_http_date(self):
        adapter = make_adapter(
            lambda request: httpx.Response(
                429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}
            )
        )
        with pytest.raises(RateLimitError) as exc_info:
            asyncio.run(adapter.search_by_owner("0xowner", SearchCriteria()))
        # the date is in the past, so there is nothing left to wait
        assert exc_info.value.retry_after == 0.0

    def test_rate_limit_with_unparseable_retry_after(self):
        adapter = make_adapter(
            lambda request: httpx.Response(429, headers={"Retry-After": "soon"})
        )
        with pytest.raises(RateLimitError) as exc_info:
            asyncio.run(adapter.search_by_owner("0xowner", SearchCriteria()))
        assert exc_info.value.retry_after is None

    def test_server_error(self):
        adapter = make_adapter(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(ServiceUnavailableError):
            asyncio.run(adapter.search_by_owner("0xowner", SearchCriteria()))

    def test_rate_limit_surfaces_as_chain_failure(self):
        adapter = make_adapter(
            lambda request: httpx.Response(
                429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
            )
        )
        scope, _ = build_scope(adapter, FixtureChainAdapter("sui"))

        result = asyncio.run(scope.find_assets_by_owner("0xowner"))

        assert result.failures["ethereum"].code == ErrorCode.RATE_LIMITED
        assert result.failures["ethereum"].retryable


class TestVerification:
    def test_verify_posts_request(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/eth/verify"
            return httpx.Response(
                200,
                json={
                    "has_access": True,
                    "balance": {"amount": 12.5, "decimals": 18, "symbol": "TOK"},
                },
            )

        adapter = make_adapter(handler)
        result = asyncio.run(
            adapter.verify_asset(VerificationOptions(user_address="0xu", asset_id="1"))
        )

        assert result.has_access
        assert result.balance.amount == 12.5

    def test_query_missing_asset(self):
        adapter = make_adapter(lambda request: httpx.Response(404))
        result = asyncio.run(
            adapter.query_asset(
                AssetQueryOptions(chain="ethereum", contract_address="0xc", asset_id="9")
            )
        )
        assert not result.exists
        assert result.error is None

    def test_query_existing_asset(self):
        adapter = make_adapter(
            lambda request: httpx.Response(
                200, json={"owner": "0xowner", "content_hashes": ["abc"]}
            )
        )
        result = asyncio.run(
            adapter.query_asset(
                AssetQueryOptions(chain="ethereum", contract_address="0xc", asset_id="1")
            )
        )
        assert result.exists
        assert result.content_hashes == ("abc",)


def test_is_configured_needs_base_url():
    assert not IndexerChainAdapter(ChainConfig(name="sui")).is_configured()
    assert not IndexerChainAdapter(
        ChainConfig(name="sui", base_url=BASE_URL, enabled=False)
    ).is_configured()
