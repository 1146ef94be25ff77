from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from flappy_ghost.game.types import Obstacle
from flappy_ghost.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScoreTracker:
    """Current-round score plus a best-ever ratchet persisted to local durable storage."""

    store: KeyValueStore | None = None
    key: str = "flappyBirdHighScore"
    current: int = 0
    best: int = 0

    def on_obstacle_passed(self) -> None:
        self.current += 1

    def reset(self) -> None:
        self.current = 0

    def commit(self) -> bool:
        """Ratchet the best score. Returns True when the round beat it."""
        if self.current > self.best:
            self.best = self.current
            return True
        return False

    async def load_best(self) -> int:
        if self.store is None:
            return self.best
        try:
            raw = await self.store.read(self.key)
        except Exception as e:
            logger.warning("Could not read best score %r: %s", self.key, e)
            return self.best
        if raw is None:
            return self.best
        try:
            stored = int(raw)
        except ValueError:
            logger.warning("Ignoring malformed best score %r for %r", raw, self.key)
            return self.best
        self.best = max(self.best, stored)
        return self.best

    async def save_best(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.write(self.key, str(self.best))
        except Exception as e:
            logger.warning("Could not persist best score %d: %s", self.best, e)


def mark_passed(
    obstacles: Iterable[Obstacle],
    world_offset: float,
    player_x: float,
    tracker: ScoreTracker,
) -> int:
    """Latch ``passed`` on every obstacle whose leading edge crossed ``player_x``; score each once."""
    newly = 0
    for obstacle in obstacles:
        if obstacle.passed:
            continue
        if obstacle.screen_x(world_offset) < player_x:
            obstacle.passed = True
            tracker.on_obstacle_passed()
            newly += 1
    return newly
