from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from flappy_ghost.config import GameConstants


def clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


CollisionKind = Literal["none", "boundary_top", "boundary_bottom", "obstacle"]


class RoundPhase(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    GAME_OVER = "game_over"


@dataclass(frozen=True, slots=True)
class Identity:
    id: str
    display_name: str = ""
    avatar_ref: str = ""


@dataclass(slots=True)
class PlayerBody:
    x: float
    y: float
    width: float
    height: float
    velocity: float = 0.0

    @classmethod
    def spawn(cls, c: GameConstants) -> "PlayerBody":
        return cls(x=c.player_x, y=c.player_y, width=c.player_width, height=c.player_height)


@dataclass(slots=True)
class Obstacle:
    world_x: float
    # top edge of the gap; the gap spans [gap_center_y, gap_center_y + gap_size]
    gap_center_y: float
    passed: bool = False

    def screen_x(self, world_offset: float) -> float:
        return self.world_x - world_offset


@dataclass(frozen=True, slots=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class DeathRecord:
    id: str
    owner_id: str
    display_name: str
    avatar_ref: str
    score: int
    position: Position
    created_at: int

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "DeathRecord":
        """Build a record from a store document. Raises ValueError/TypeError/KeyError on bad data."""
        pos = doc.get("position")
        if not isinstance(pos, dict):
            raise ValueError("position missing")
        record_id = str(doc["id"] or "")
        if not record_id:
            raise ValueError("id missing")
        return cls(
            id=record_id,
            owner_id=str(doc.get("owner_id") or ""),
            display_name=str(doc.get("display_name") or ""),
            avatar_ref=str(doc.get("avatar_ref") or ""),
            score=int(doc.get("score") or 0),
            position=Position(x=float(pos["x"]), y=float(pos["y"])),
            created_at=int(doc.get("created_at") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
            "score": self.score,
            "position": {"x": self.position.x, "y": self.position.y},
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class GhostSet:
    records: tuple[DeathRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def ids(self) -> list[str]:
        return [r.id for r in self.records]


EMPTY_GHOSTS = GhostSet()


@dataclass(frozen=True, slots=True)
class CollisionResult:
    kind: CollisionKind = "none"
    obstacle: Obstacle | None = None

    @property
    def collided(self) -> bool:
        return self.kind != "none"

    @property
    def is_boundary(self) -> bool:
        return self.kind in ("boundary_top", "boundary_bottom")


NO_COLLISION = CollisionResult()


@dataclass(slots=True)
class RoundState:
    """Everything a round mutates. Owned by the state machine, never captured elsewhere."""

    body: PlayerBody
    phase: RoundPhase = RoundPhase.IDLE
    countdown: int = 0
    obstacles: list[Obstacle] = field(default_factory=list)
    world_offset: float = 0.0
    score: int = 0
    tick_count: int = 0
    last_collision: CollisionResult = NO_COLLISION
