from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from sqlalchemy import BigInteger, Integer, String, Text, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from flappy_ghost.storage.base import StoreUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class DocumentRow(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    collection: Mapped[str] = mapped_column(String(64), index=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True, default="")
    score: Mapped[int] = mapped_column(Integer, index=True, default=0)
    created_ms: Mapped[int] = mapped_column(BigInteger, index=True, default=0)
    json_blob: Mapped[str] = mapped_column(Text)


# document fields that are mirrored into indexed columns
_INDEXED = {
    "owner_id": DocumentRow.owner_id,
    "score": DocumentRow.score,
    "created_at": DocumentRow.created_ms,
}


def _column_for(field_name: str):
    column = _INDEXED.get(field_name)
    if column is None:
        raise ValueError(f"field not queryable: {field_name}")
    return column


@dataclass(slots=True)
class SqlDocumentStore:
    """Document store over one SQL table, queried through the indexed columns.

    With no DSN configured the store is unavailable: queries and inserts raise
    ``StoreUnavailable`` so callers degrade the same way they do on outages.
    """

    dsn: str | None = None
    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None

    async def connect(self) -> None:
        if self.dsn is None:
            self.engine = None
            self.session_factory = None
            return
        url = make_url(self.dsn)
        if url.get_backend_name() == "sqlite":
            self.engine = create_async_engine(self.dsn)
        else:
            self.engine = create_async_engine(self.dsn, pool_pre_ping=True, pool_recycle=1800)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.session_factory = None

    async def ensure_schema(self) -> None:
        if self.engine is None:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            if not self._is_unknown_database_error(e):
                raise
            await self._ensure_database_exists()
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    def _is_unknown_database_error(self, e: Exception) -> bool:
        s = str(e).lower()
        return "unknown database" in s or "1049" in s

    async def _ensure_database_exists(self) -> None:
        if self.dsn is None:
            return
        url = make_url(self.dsn)
        db = url.database
        if not db:
            return
        server_url = url.set(database=None)
        server_engine = create_async_engine(server_url, pool_pre_ping=True, pool_recycle=1800)
        try:
            async with server_engine.begin() as conn:
                await conn.exec_driver_sql(
                    "CREATE DATABASE IF NOT EXISTS "
                    + f"`{db}`"
                    + " CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                )
        finally:
            await server_engine.dispose()

    def _require_session(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            raise StoreUnavailable("document store not configured")
        return self.session_factory

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        session_factory = self._require_session()
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        for name, value in (filters or {}).items():
            stmt = stmt.where(_column_for(name) == value)
        if order_by is not None:
            column = _column_for(order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(max(0, limit))

        async with session_factory() as session:
            rows = (await session.scalars(stmt)).all()

        docs: list[dict[str, Any]] = []
        for row in rows:
            try:
                value = json.loads(row.json_blob)
            except ValueError:
                logger.warning("Skipping undecodable document %s in %s", row.id, collection)
                continue
            if not isinstance(value, dict):
                continue
            value["id"] = row.id
            docs.append(value)
        return docs

    async def insert(self, collection: str, record: dict[str, Any]) -> str:
        session_factory = self._require_session()
        doc_id = uuid4().hex
        blob = json.dumps(record, ensure_ascii=False)
        async with session_factory() as session:
            session.add(
                DocumentRow(
                    id=doc_id,
                    collection=collection,
                    owner_id=str(record.get("owner_id") or ""),
                    score=int(record.get("score") or 0),
                    created_ms=int(record.get("created_at") or 0),
                    json_blob=blob,
                )
            )
            await session.commit()
        return doc_id
