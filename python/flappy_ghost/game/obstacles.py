from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Iterator, Protocol

from flappy_ghost.config import GameConstants
from flappy_ghost.game.types import Obstacle


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


@dataclass(slots=True)
class ObstacleGenerator:
    """Spawns one obstacle every ``spawn_interval_ticks`` frames at the right edge of the viewport.

    The generator only appends; pruning is the caller's job (see :func:`prune`).
    Pass a seeded ``random.Random`` as ``rng`` for reproducible gap placement.
    """

    constants: GameConstants
    rng: RandomSource = field(default_factory=random.Random)
    frame: int = 0

    def reset(self) -> None:
        self.frame = 0

    def gap_range(self) -> tuple[float, float]:
        c = self.constants
        lo = c.margin_top
        hi = c.world_height - c.gap_size - c.margin_bottom
        return lo, max(lo, hi)

    def maybe_spawn(self, world_offset: float) -> Obstacle | None:
        self.frame += 1
        interval = max(1, self.constants.spawn_interval_ticks)
        if self.frame % interval != 0:
            return None
        lo, hi = self.gap_range()
        return Obstacle(
            world_x=world_offset + self.constants.viewport_width,
            gap_center_y=self.rng.uniform(lo, hi),
        )

    def stream(self, world_offset: Callable[[], float]) -> Iterator[Obstacle]:
        """Lazy, infinite stream of obstacles; each ``next()`` advances frames until one spawns."""
        while True:
            obstacle = self.maybe_spawn(world_offset())
            if obstacle is not None:
                yield obstacle


def prune(obstacles: list[Obstacle], world_offset: float, obstacle_width: float) -> list[Obstacle]:
    return [o for o in obstacles if o.world_x + obstacle_width - world_offset > 0]
