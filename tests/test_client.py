import asyncio

from conftest import FixtureChainAdapter, build_scope, make_asset

from chainscope.client import ChainScope
from chainscope.settings import Settings
from chainscope.verification.types import GatingRule, GatingType


def test_health_status_reports_failures():
    eth = FixtureChainAdapter("ethereum", [make_asset("ethereum", "1")])
    sui = FixtureChainAdapter("sui", fail_with=ConnectionError("network"))
    scope, _ = build_scope(eth, sui)

    asyncio.run(scope.find_assets_by_owner("0xowner"))
    health = scope.get_health_status()

    assert health["chains"]["configured_chains"] == ["ethereum", "sui"]
    assert health["circuit_breakers"]["search_by_owner:sui"]["failure_count"] == 1
    assert health["open_circuits"] == []
    assert health["errors"]["errors_by_code"]["network-error"] >= 1
    assert health["cache"]["entries_by_chain"] == {}


def test_repeated_failures_open_the_chain_circuit():
    sui = FixtureChainAdapter("sui", fail_with=ConnectionError("network"))
    eth = FixtureChainAdapter("ethereum")
    scope, _ = build_scope(sui, eth, circuit_failure_threshold=2)

    async def run():
        for _ in range(3):
            await scope.find_assets_by_owner("0xowner")

    asyncio.run(run())

    assert scope.get_health_status()["open_circuits"] == ["search_by_owner:sui"]
    assert len(sui.calls) == 2


def test_save_gating_rule_stores_json():
    scope, _ = build_scope(FixtureChainAdapter("ethereum"))
    rule = GatingRule(type=GatingType.COLLECTION_OWNERSHIP, collections=("0xapes",))

    async def run():
        await scope.save_gating_rule("apes", rule)
        return await scope.store.get("gating:apes")

    stored = asyncio.run(run())

    assert stored["type"] == "collection_ownership"
    assert stored["collections"] == ["0xapes"]


def test_from_settings_reads_topology(tmp_path):
    path = tmp_path / "chains.yaml"
    path.write_text(
        "chains:\n  - name: sui\n    family: sui\n    base_url: https://indexer.test/sui\n",
        encoding="utf-8",
    )

    async def run():
        async with ChainScope.from_settings(
            Settings(chains_config_path=str(path))
        ) as scope:
            return scope.registry.chains, scope.classifier.family_of("sui")

    assert asyncio.run(run()) == (["sui"], "sui")
