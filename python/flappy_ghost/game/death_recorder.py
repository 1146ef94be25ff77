from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from flappy_ghost.game.types import Identity, Position
from flappy_ghost.storage.base import DocumentStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class DeathRecorder:
    """Append-only ledger of deaths. Failures are logged and swallowed."""

    store: DocumentStore
    collection: str = "flappy_deaths"
    clock: Callable[[], int] = field(default=_now_ms)

    async def record(self, identity: Identity, score: int, position: Position) -> str | None:
        doc = {
            "owner_id": identity.id,
            "display_name": identity.display_name,
            "avatar_ref": identity.avatar_ref,
            "score": int(score),
            "position": {"x": float(position.x), "y": float(position.y)},
            "created_at": self.clock(),
        }
        try:
            record_id = await self.store.insert(self.collection, doc)
        except Exception as e:
            logger.warning("Death record for %s lost: %s", identity.id, e)
            return None
        logger.info("Recorded death %s for %s (score %d)", record_id, identity.id, score)
        return record_id
