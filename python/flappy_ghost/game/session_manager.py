from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import uuid4

from flappy_ghost.config import GameConstants, Settings
from flappy_ghost.game.death_recorder import DeathRecorder
from flappy_ghost.game.driver import FrameCallback, PhaseCallback, RoundDriver
from flappy_ghost.game.ghosts import GhostRegistry
from flappy_ghost.game.round import RoundStateMachine
from flappy_ghost.game.scoring import ScoreTracker
from flappy_ghost.game.types import Identity
from flappy_ghost.storage.base import DocumentStore, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GameSession:
    session_id: str
    identity: Identity | None
    machine: RoundStateMachine
    driver: RoundDriver


@dataclass(slots=True)
class SessionManager:
    documents: DocumentStore
    local: KeyValueStore
    settings: Settings
    constants: GameConstants = field(default_factory=GameConstants)
    _sessions: dict[str, GameSession] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def best_score_key(self, identity: Identity | None) -> str:
        owner = identity.id if identity is not None else "anonymous"
        return f"{self.settings.best_score_key}:{owner}"

    async def create(
        self,
        identity: Identity | None,
        on_frame: FrameCallback | None = None,
        on_phase: PhaseCallback | None = None,
    ) -> GameSession:
        s = self.settings
        # anonymous players share no durable key; their best lives for the session only
        scores = ScoreTracker(
            store=self.local if identity is not None else None,
            key=self.best_score_key(identity),
        )
        await scores.load_best()
        machine = RoundStateMachine(
            constants=self.constants,
            ghosts=GhostRegistry(
                store=self.documents,
                top_n=s.ghost_top_n,
                own_limit=s.ghost_own_limit,
                collection=s.deaths_collection,
            ),
            recorder=DeathRecorder(store=self.documents, collection=s.deaths_collection),
            scores=scores,
            identity=identity,
            countdown_from=s.countdown_seconds,
            ghost_view_margin=s.ghost_view_margin,
        )
        driver = RoundDriver(
            machine,
            frame_hz=s.frame_hz,
            countdown_interval=s.countdown_interval,
            on_frame=on_frame,
            on_phase=on_phase,
        )
        session = GameSession(session_id=uuid4().hex, identity=identity, machine=machine, driver=driver)
        async with self._lock:
            self._sessions[session.session_id] = session
        logger.info(
            "Session %s opened for %s (best %d)",
            session.session_id,
            identity.id if identity else "anonymous",
            scores.best,
        )
        return session

    def get(self, session_id: str) -> GameSession | None:
        return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.driver.close()
        logger.info("Session %s closed", session_id)

    async def close_all(self) -> None:
        async with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            await self.close(session_id)
