from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4


@dataclass(slots=True)
class MemoryDocumentStore:
    """In-process document store. Used for offline play and tests."""

    _collections: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        docs = list(self._collections.get(collection, {}).values())
        if filters:
            docs = [d for d in docs if all(d.get(k) == v for k, v in filters.items())]
        if order_by is not None:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            # documents without the field go last either way
            present.sort(key=lambda d: d[order_by], reverse=descending)
            docs = present + missing
        if limit is not None:
            docs = docs[: max(0, limit)]
        return [copy.deepcopy(d) for d in docs]

    async def insert(self, collection: str, record: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        doc = copy.deepcopy(record)
        doc["id"] = doc_id
        self._collections.setdefault(collection, {})[doc_id] = doc
        return doc_id

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))


@dataclass(slots=True)
class MemoryKeyValueStore:
    _values: dict[str, str] = field(default_factory=dict)

    async def read(self, key: str) -> str | None:
        return self._values.get(key)

    async def write(self, key: str, value: str) -> None:
        self._values[key] = value
