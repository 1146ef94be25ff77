from __future__ import annotations

from typing import Any, Protocol


class DocumentStore(Protocol):
    """Narrow document-database capability the game needs.

    ``filters`` are equality matches on top-level fields. Every returned
    document carries its ``"id"``.
    """

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, collection: str, record: dict[str, Any]) -> str: ...


class KeyValueStore(Protocol):
    """Local durable storage (best score and similar per-device values)."""

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, value: str) -> None: ...


class StoreUnavailable(RuntimeError):
    pass
