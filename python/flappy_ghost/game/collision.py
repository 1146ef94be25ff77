from __future__ import annotations

from typing import Iterable

from flappy_ghost.config import GameConstants
from flappy_ghost.game.types import NO_COLLISION, CollisionResult, Obstacle, PlayerBody


def _spans_overlap(a_lo: float, a_hi: float, b_lo: float, b_hi: float) -> bool:
    return a_lo < b_hi and a_hi > b_lo


def check_boundary(body: PlayerBody, world_height: float) -> CollisionResult:
    if body.y < 0:
        return CollisionResult(kind="boundary_top")
    if body.y + body.height > world_height:
        return CollisionResult(kind="boundary_bottom")
    return NO_COLLISION


def hits_obstacle(body: PlayerBody, obstacle: Obstacle, world_offset: float, c: GameConstants) -> bool:
    left = obstacle.screen_x(world_offset)
    if not _spans_overlap(body.x, body.x + body.width, left, left + c.obstacle_width):
        return False
    gap_top = obstacle.gap_center_y
    gap_bottom = gap_top + c.gap_size
    return body.y < gap_top or body.y + body.height > gap_bottom


def detect_collision(
    body: PlayerBody,
    obstacles: Iterable[Obstacle],
    world_offset: float,
    c: GameConstants,
) -> CollisionResult:
    """Boundary first, then obstacles in order; the first hit wins. Ghosts are never passed in."""
    result = check_boundary(body, c.world_height)
    if result.collided:
        return result
    for obstacle in obstacles:
        if hits_obstacle(body, obstacle, world_offset, c):
            return CollisionResult(kind="obstacle", obstacle=obstacle)
    return NO_COLLISION
