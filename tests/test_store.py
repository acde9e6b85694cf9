import asyncio

import pytest

from chainscope.datastore.engine import close_db, get_session_factory, init_db
from chainscope.datastore.store import InMemoryMetadataStore, SqlMetadataStore

RULE = {"type": "token_balance", "contract_address": "0xtoken", "minimum_balance": 5}


async def exercise(store):
    assert await store.get("gating:holders") is None
    await store.put("gating:holders", RULE)
    first = await store.get("gating:holders")
    await store.put("gating:holders", {**RULE, "minimum_balance": 10})
    second = await store.get("gating:holders")
    deleted = await store.delete("gating:holders")
    deleted_again = await store.delete("gating:holders")
    return first, second, deleted, deleted_again


def test_in_memory_store():
    first, second, deleted, deleted_again = asyncio.run(
        exercise(InMemoryMetadataStore())
    )

    assert first == RULE
    assert second["minimum_balance"] == 10
    assert deleted and not deleted_again


def test_in_memory_store_copies_values():
    store = InMemoryMetadataStore()

    async def run():
        value = {"tags": ["a"]}
        await store.put("k", value)
        value["tags"].append("b")
        fetched = await store.get("k")
        fetched["tags"].append("c")
        return await store.get("k")

    assert asyncio.run(run()) == {"tags": ["a"]}


def test_sql_store():
    async def run():
        session_factory = await init_db("sqlite+aiosqlite:///:memory:", echo=False)
        try:
            return await exercise(SqlMetadataStore(session_factory))
        finally:
            await close_db()

    first, second, deleted, deleted_again = asyncio.run(run())

    assert first == RULE
    assert second["minimum_balance"] == 10
    assert deleted and not deleted_again


def test_session_factory_requires_init():
    with pytest.raises(RuntimeError):
        get_session_factory()
