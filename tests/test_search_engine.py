import asyncio
from datetime import datetime

import pytest
from conftest import FixtureChainAdapter, build_scope, make_asset

from chainscope.search.types import (
    AttributeFilter,
    AttributeOperator,
    PriceRange,
    SearchCriteria,
    SortField,
    SortOrder,
    TimeRange,
)
from chainscope.services.errors import ChainServiceError
from chainscope.services.taxonomy import ErrorCode


class TestFindAssetsByOwner:
    def test_explicit_chain_subset_is_respected(self, three_chains):
        scope, _ = build_scope(*three_chains)
        result = asyncio.run(
            scope.find_assets_by_owner(
                "0xowner", SearchCriteria(chains=("ethereum", "sui"))
            )
        )

        assert {a.chain for a in result.assets} == {"ethereum", "sui"}
        assert three_chains[2].calls == []

    def test_empty_chain_list_means_all_configured(self, three_chains):
        three_chains[2].configured = False
        scope, _ = build_scope(*three_chains)

        result = asyncio.run(scope.find_assets_by_owner("0xowner"))

        assert result.total_count == 2
        assert "solana" not in result.statistics.chain_distribution
        assert three_chains[2].calls == []

    def test_one_failed_chain_gives_partial_result(self):
        eth = FixtureChainAdapter("ethereum", [make_asset("ethereum", "1")])
        sui = FixtureChainAdapter("sui", fail_with=RuntimeError("connection refused"))
        sol = FixtureChainAdapter("solana", [make_asset("solana", "2")])
        scope, _ = build_scope(eth, sui, sol)

        result = asyncio.run(scope.find_assets_by_owner("0xowner"))

        assert sorted(a.id for a in result.assets) == ["ethereum:1", "solana:2"]
        assert result.statistics.chain_distribution["sui"] == 0
        assert result.failed_chains == ["sui"]
        assert result.failures["sui"].code == ErrorCode.NETWORK_ERROR

    def test_every_chain_failing_is_search_failed(self):
        eth = FixtureChainAdapter("ethereum", fail_with=RuntimeError("boom"))
        sui = FixtureChainAdapter("sui", fail_with=ConnectionError("network"))
        scope, _ = build_scope(eth, sui)

        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(scope.find_assets_by_owner("0xowner"))

        record = exc_info.value.record
        assert record.code == ErrorCode.SEARCH_FAILED
        assert record.context["failures"] == {
            "ethereum": "internal-error",
            "sui": "network-error",
        }
        assert record.cause is not None

    def test_unknown_chain_is_a_per_chain_diagnostic(self, three_chains):
        scope, _ = build_scope(*three_chains)
        result = asyncio.run(
            scope.find_assets_by_owner(
                "0xowner", SearchCriteria(chains=("ethereum", "aptos"))
            )
        )

        assert [a.id for a in result.assets] == ["ethereum:1"]
        assert result.failures["aptos"].code == ErrorCode.CHAIN_NOT_SUPPORTED
        assert result.statistics.chain_distribution["aptos"] == 0

    def test_no_chains_at_all_is_empty_result(self):
        scope, _ = build_scope()
        result = asyncio.run(scope.find_assets_by_owner("0xowner"))
        assert result.total_count == 0
        assert result.failures == {}

    def test_retries_use_configured_backoff(self):
        sui = FixtureChainAdapter("sui", fail_with=ConnectionError("network"))
        eth = FixtureChainAdapter("ethereum", [make_asset("ethereum", "1")])
        scope, sleep = build_scope(sui, eth, max_retries=3, initial_delay_ms=100)

        asyncio.run(scope.find_assets_by_owner("0xowner"))

        assert len(sui.calls) == 4
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4])


class TestCriteriaValidation:
    @pytest.mark.parametrize(
        "criteria",
        [
            SearchCriteria(offset=-1),
            SearchCriteria(limit=0),
            SearchCriteria(price_range=PriceRange(min=5, max=1)),
            SearchCriteria(
                time_range=TimeRange(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))
            ),
        ],
    )
    def test_rejected_before_dispatch(self, three_chains, criteria):
        scope, _ = build_scope(*three_chains)

        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(scope.find_assets_by_owner("0xowner", criteria))

        assert exc_info.value.code == ErrorCode.INVALID_CRITERIA
        assert all(adapter.calls == [] for adapter in three_chains)

    def test_blank_owner_rejected(self, three_chains):
        scope, _ = build_scope(*three_chains)
        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(scope.find_assets_by_owner("  "))
        assert exc_info.value.code == ErrorCode.INVALID_CRITERIA


class TestCollectionAndText:
    def test_collection_on_one_chain(self):
        eth = FixtureChainAdapter(
            "ethereum",
            [
                make_asset("ethereum", "1", collection_name="Apes"),
                make_asset("ethereum", "2", collection_name="Punks"),
            ],
        )
        sui = FixtureChainAdapter("sui", [make_asset("sui", "3", collection_name="Apes")])
        scope, _ = build_scope(eth, sui)

        result = asyncio.run(scope.find_assets_by_collection("Apes", "ethereum"))

        assert [a.id for a in result.assets] == ["ethereum:1"]
        assert sui.calls == []

    def test_collection_on_unknown_chain_raises(self):
        scope, _ = build_scope(FixtureChainAdapter("ethereum"))
        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(scope.find_assets_by_collection("Apes", "aptos"))
        assert exc_info.value.code == ErrorCode.CHAIN_NOT_SUPPORTED

    def test_text_search_ranked_by_relevance(self):
        eth = FixtureChainAdapter(
            "ethereum",
            [
                make_asset("ethereum", "1", name="Lizard", attributes={"Kind": "Dragonkin"}),
                make_asset("ethereum", "2", name="Dragon"),
            ],
        )
        scope, _ = build_scope(eth)

        result = asyncio.run(scope.text_search("dragon"))

        assert [a.id for a in result.assets] == ["ethereum:2", "ethereum:1"]
        assert result.applied_filters.sort_by == SortField.RARITY
        assert result.applied_filters.text_search == "dragon"

    def test_text_search_ascending_when_asked(self):
        eth = FixtureChainAdapter(
            "ethereum",
            [make_asset("ethereum", "1", name="a dragon"), make_asset("ethereum", "2", name="dragon")],
        )
        scope, _ = build_scope(eth)

        result = asyncio.run(
            scope.text_search("dragon", SearchCriteria(sort_order=SortOrder.ASC))
        )
        assert [a.id for a in result.assets] == ["ethereum:1", "ethereum:2"]

    def test_empty_query_rejected(self):
        scope, _ = build_scope(FixtureChainAdapter("ethereum"))
        with pytest.raises(ChainServiceError):
            asyncio.run(scope.text_search(""))


class TestAdvancedSearch:
    def test_owner_and_text_match_deduplicated(self):
        asset = make_asset("ethereum", "1", name="Golden Dragon", owner="0xme")
        eth = FixtureChainAdapter("ethereum", [asset])
        scope, _ = build_scope(eth)

        result = asyncio.run(
            scope.advanced_search(
                SearchCriteria(owner_address="0xme", text_search="dragon")
            )
        )

        assert result.total_count == 1
        assert eth.calls == ["search_by_owner", "text_search"]

    def test_combines_collections_and_attributes(self):
        eth = FixtureChainAdapter(
            "ethereum",
            [
                make_asset("ethereum", "1", collection_name="Apes", attributes={"Level": 10}),
                make_asset("ethereum", "2", attributes={"Level": 90}),
                make_asset("ethereum", "3", attributes={"Level": 5}),
            ],
        )
        scope, _ = build_scope(eth)

        result = asyncio.run(
            scope.advanced_search(
                SearchCriteria(
                    collections=("Apes",),
                    attributes=(
                        AttributeFilter(
                            trait_type="Level",
                            value=50,
                            operator=AttributeOperator.GREATER_THAN,
                        ),
                    ),
                )
            )
        )

        assert sorted(a.id for a in result.assets) == ["ethereum:1", "ethereum:2"]

    def test_needs_a_strategy(self):
        scope, _ = build_scope(FixtureChainAdapter("ethereum"))
        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(scope.advanced_search(SearchCriteria(verified_only=True)))
        assert exc_info.value.code == ErrorCode.INVALID_CRITERIA
