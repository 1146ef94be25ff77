from __future__ import annotations

import asyncio
from typing import Any

import pytest

from flappy_ghost.config import GameConstants
from flappy_ghost.game.types import Identity
from flappy_ghost.storage.memory import MemoryDocumentStore


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def uniform(self, a: float, b: float) -> float:
        return self.value


class FailingStore:
    def __init__(self) -> None:
        self.inserts = 0
        self.queries = 0

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        self.queries += 1
        raise ConnectionError("store down")

    async def insert(self, collection, record):
        self.inserts += 1
        raise ConnectionError("store down")


class RecordingStore(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[dict[str, Any]] = []

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        self.calls.append(
            {"collection": collection, "filters": filters, "order_by": order_by, "descending": descending, "limit": limit}
        )
        return await MemoryDocumentStore.query(self, collection, filters, order_by, descending, limit)


class GatedStore(MemoryDocumentStore):
    """Queries block until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        await self.gate.wait()
        return await MemoryDocumentStore.query(self, collection, filters, order_by, descending, limit)


def death_doc(owner: str, score: int, x: float = 100.0, y: float = 200.0, created_at: int = 0) -> dict[str, Any]:
    return {
        "owner_id": owner,
        "display_name": owner.title(),
        "avatar_ref": f"avatars/{owner}.png",
        "score": score,
        "position": {"x": x, "y": y},
        "created_at": created_at,
    }


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)


@pytest.fixture
def c() -> GameConstants:
    return GameConstants()


@pytest.fixture
def alice() -> Identity:
    return Identity(id="alice", display_name="Alice", avatar_ref="avatars/alice.png")
