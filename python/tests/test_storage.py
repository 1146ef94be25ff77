from __future__ import annotations

import pytest
from conftest import death_doc

from flappy_ghost.game.ghosts import GhostRegistry
from flappy_ghost.storage.base import StoreUnavailable
from flappy_ghost.storage.memory import MemoryDocumentStore, MemoryKeyValueStore
from flappy_ghost.storage.redis_store import RedisKeyValueStore
from flappy_ghost.storage.sql_store import SqlDocumentStore

DEATHS = "flappy_deaths"


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value

    async def aclose(self):
        pass


async def test_memory_store_filters_orders_and_limits():
    store = MemoryDocumentStore()
    for owner, score in [("a", 5), ("b", 9), ("a", 7), ("c", 1)]:
        await store.insert(DEATHS, death_doc(owner, score))
    await store.insert("other", death_doc("a", 100))

    top = await store.query(DEATHS, order_by="score", descending=True, limit=2)
    assert [d["score"] for d in top] == [9, 7]

    own = await store.query(DEATHS, filters={"owner_id": "a"}, order_by="score")
    assert [d["score"] for d in own] == [5, 7]

    assert len(await store.query(DEATHS)) == 4
    assert await store.query("missing") == []


async def test_memory_store_returns_copies():
    store = MemoryDocumentStore()
    doc_id = await store.insert(DEATHS, death_doc("a", 5))
    (doc,) = await store.query(DEATHS)
    doc["position"]["x"] = -1
    (again,) = await store.query(DEATHS)
    assert again["id"] == doc_id
    assert again["position"]["x"] == 100.0


async def test_memory_key_value_store():
    store = MemoryKeyValueStore()
    assert await store.read("k") is None
    await store.write("k", "3")
    assert await store.read("k") == "3"


async def test_sql_store_round_trip(tmp_path):
    store = SqlDocumentStore(dsn=f"sqlite+aiosqlite:///{tmp_path / 'deaths.db'}")
    await store.connect()
    await store.ensure_schema()
    try:
        ids = {}
        for owner, score, created in [("alice", 4, 10), ("bob", 11, 20), ("alice", 8, 30), ("carol", 2, 40)]:
            ids[(owner, score)] = await store.insert(DEATHS, death_doc(owner, score, created_at=created))
        await store.insert("elsewhere", death_doc("alice", 99))

        top = await store.query(DEATHS, order_by="score", descending=True, limit=2)
        assert [(d["owner_id"], d["score"]) for d in top] == [("bob", 11), ("alice", 8)]
        assert top[0]["id"] == ids[("bob", 11)]
        assert top[0]["position"] == {"x": 100.0, "y": 200.0}

        own = await store.query(DEATHS, filters={"owner_id": "alice"}, order_by="created_at", descending=True)
        assert [d["score"] for d in own] == [8, 4]

        with pytest.raises(ValueError):
            await store.query(DEATHS, filters={"display_name": "Alice"})

        ghosts = await GhostRegistry(store, top_n=3, own_limit=5).load("alice")
        assert [r.score for r in ghosts] == [11, 8, 4]
    finally:
        await store.close()


async def test_unconfigured_sql_store_is_unavailable():
    store = SqlDocumentStore(dsn=None)
    await store.connect()
    await store.ensure_schema()
    with pytest.raises(StoreUnavailable):
        await store.query(DEATHS)
    with pytest.raises(StoreUnavailable):
        await store.insert(DEATHS, death_doc("a", 1))

    ghosts = await GhostRegistry(store).load("a")
    assert len(ghosts) == 0


async def test_unconfigured_redis_store_degrades():
    store = RedisKeyValueStore(url=None)
    await store.connect()
    assert not store.connected
    await store.write("best", "10")
    assert await store.read("best") is None
    await store.close()


async def test_redis_store_namespaces_keys():
    store = RedisKeyValueStore(url="redis://unused", namespace="fg")
    fake = FakeRedis()
    store._client = fake
    await store.write("best:alice", "12")
    assert fake.values == {"fg:kv:best:alice": "12"}
    assert await store.read("best:alice") == "12"
    await store.close()
    assert not store.connected
