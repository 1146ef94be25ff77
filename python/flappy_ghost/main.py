from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from flappy_ghost.config import Settings, settings
from flappy_ghost.game.session_manager import SessionManager
from flappy_ghost.game.types import DeathRecord
from flappy_ghost.storage.memory import MemoryDocumentStore, MemoryKeyValueStore
from flappy_ghost.storage.redis_store import RedisKeyValueStore
from flappy_ghost.storage.sql_store import SqlDocumentStore
from flappy_ghost.ws import handle_ws

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def create_app(cfg: Settings = settings) -> FastAPI:
    """Build the shell. Without a DSN/Redis URL the game runs on in-process stores."""
    sql_store = SqlDocumentStore(dsn=cfg.database_dsn) if cfg.database_dsn else None
    redis_store = RedisKeyValueStore(url=cfg.redis_url) if cfg.redis_url else None
    sessions = SessionManager(
        documents=sql_store or MemoryDocumentStore(),
        local=redis_store or MemoryKeyValueStore(),
        settings=cfg,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if sql_store is not None:
            await sql_store.connect()
            await sql_store.ensure_schema()
        if redis_store is not None:
            await redis_store.connect()
        yield
        await sessions.close_all()
        if redis_store is not None:
            await redis_store.close()
        if sql_store is not None:
            await sql_store.close()

    app = FastAPI(title=cfg.app_name, lifespan=lifespan)
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "sessions": len(sessions)}

    @app.get("/leaderboard")
    async def leaderboard(limit: int = cfg.ghost_top_n) -> dict[str, Any]:
        limit = max(1, min(limit, 100))
        try:
            docs = await sessions.documents.query(
                cfg.deaths_collection, order_by="score", descending=True, limit=limit
            )
        except Exception as e:
            logger.warning("Leaderboard query failed: %s", e)
            docs = []
        entries = []
        for doc in docs:
            try:
                entries.append(DeathRecord.from_document(doc).to_dict())
            except (KeyError, TypeError, ValueError):
                continue
        return {"entries": entries}

    @app.websocket(cfg.ws_path)
    async def ws_endpoint(ws: WebSocket) -> None:
        await handle_ws(ws, sessions)

    return app


setup_logging(settings.log_level)
app = create_app()
