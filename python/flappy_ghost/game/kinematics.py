from __future__ import annotations

from dataclasses import dataclass

from flappy_ghost.config import GameConstants
from flappy_ghost.game.types import PlayerBody


@dataclass(slots=True)
class Kinematics:
    """Vertical motion of the player. Gravity accumulates per tick, jump overwrites velocity."""

    body: PlayerBody
    gravity: float
    lift_impulse: float

    @classmethod
    def for_body(cls, body: PlayerBody, c: GameConstants) -> "Kinematics":
        return cls(body=body, gravity=c.gravity, lift_impulse=c.lift_impulse)

    def tick(self, dt_ticks: int = 1) -> None:
        for _ in range(max(0, dt_ticks)):
            self.body.velocity += self.gravity
            self.body.y += self.body.velocity

    def jump(self) -> None:
        self.body.velocity = self.lift_impulse
