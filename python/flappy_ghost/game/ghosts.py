from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from flappy_ghost.game.types import EMPTY_GHOSTS, DeathRecord, GhostSet
from flappy_ghost.storage.base import DocumentStore

logger = logging.getLogger(__name__)


def _to_records(docs: Iterable[Any]) -> list[DeathRecord]:
    records: list[DeathRecord] = []
    for doc in docs:
        if not isinstance(doc, dict):
            continue
        try:
            records.append(DeathRecord.from_document(doc))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed death record: %r", doc)
    return records


def merge(*groups: Iterable[DeathRecord]) -> GhostSet:
    """Union by record id, first occurrence wins, order preserved."""
    seen: set[str] = set()
    out: list[DeathRecord] = []
    for group in groups:
        for record in group:
            if record.id in seen:
                continue
            seen.add(record.id)
            out.append(record)
    return GhostSet(records=tuple(out))


@dataclass(slots=True)
class GhostRegistry:
    store: DocumentStore
    top_n: int = 20
    own_limit: int = 5
    collection: str = "flappy_deaths"

    async def load(self, current_user_id: str | None) -> GhostSet:
        """Top-N deaths by score plus the player's most recent own deaths.

        Never raises: a failing store yields an empty set.
        """
        try:
            top = await self.store.query(
                self.collection,
                order_by="score",
                descending=True,
                limit=self.top_n,
            )
            own: list[dict[str, Any]] = []
            if current_user_id and self.own_limit > 0:
                own = await self.store.query(
                    self.collection,
                    filters={"owner_id": current_user_id},
                    order_by="created_at",
                    descending=True,
                    limit=self.own_limit,
                )
        except Exception as e:
            logger.warning("Ghost load failed, playing without ghosts: %s", e)
            return EMPTY_GHOSTS

        ghosts = merge(_to_records(top), _to_records(own))
        logger.info("Loaded %d ghosts (%d top, %d own)", len(ghosts), len(top), len(own))
        return ghosts


def visible(
    ghosts: GhostSet,
    world_offset: float,
    viewport_width: float,
    margin: float = 50.0,
) -> Iterator[tuple[DeathRecord, float, float]]:
    for record in ghosts:
        screen_x = record.position.x - world_offset
        if -margin <= screen_x <= viewport_width + margin:
            yield record, screen_x, record.position.y
