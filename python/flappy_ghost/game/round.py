"""
Round state machine for Flappy Ghost.

Phases:
    IDLE: nothing running yet
    COUNTDOWN: counting down from 3, ghosts loading in the background
    RUNNING: one synchronous tick() per frame
    GAME_OVER: simulation frozen until the next start()

Only ``start()``, ``countdown_step()``, ``jump()``, ``tick()`` and ``stop()``
mutate the round. Ghost loading and death recording run as background tasks and never
block those calls.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Coroutine

from flappy_ghost.config import GameConstants
from flappy_ghost.game import ghosts as ghost_view
from flappy_ghost.game.collision import detect_collision
from flappy_ghost.game.death_recorder import DeathRecorder
from flappy_ghost.game.ghosts import GhostRegistry
from flappy_ghost.game.kinematics import Kinematics
from flappy_ghost.game.obstacles import ObstacleGenerator, RandomSource, prune
from flappy_ghost.game.scoring import ScoreTracker, mark_passed
from flappy_ghost.game.types import (
    EMPTY_GHOSTS,
    NO_COLLISION,
    CollisionResult,
    GhostSet,
    Identity,
    PlayerBody,
    Position,
    RoundPhase,
    RoundState,
)

logger = logging.getLogger(__name__)

Listener = Callable[[RoundPhase, RoundPhase, RoundState], None]


class TickOutsideRunning(RuntimeError):
    pass


class RoundStateMachine:
    def __init__(
        self,
        constants: GameConstants | None = None,
        ghosts: GhostRegistry | None = None,
        recorder: DeathRecorder | None = None,
        scores: ScoreTracker | None = None,
        identity: Identity | None = None,
        rng: RandomSource | None = None,
        countdown_from: int = 3,
        ghost_view_margin: float = 50.0,
    ) -> None:
        self.constants = constants or GameConstants()
        self.ghosts = ghosts
        self.recorder = recorder
        self.scores = scores or ScoreTracker()
        self.identity = identity
        self.countdown_from = countdown_from
        self.ghost_view_margin = ghost_view_margin

        self.state = RoundState(body=PlayerBody.spawn(self.constants))
        self.kinematics = Kinematics.for_body(self.state.body, self.constants)
        self.generator = ObstacleGenerator(self.constants, rng or random.Random())

        self.ghost_set: GhostSet = EMPTY_GHOSTS
        self.last_death_id: str | None = None
        self._ghost_generation = 0
        self._ghosts_locked = False
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def phase(self) -> RoundPhase:
        return self.state.phase

    @property
    def ghost_generation(self) -> int:
        """Bumped on every start() and stop(); identifies which ghost load may still apply."""
        return self._ghost_generation

    def add_listener(self, callback: Listener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _transition(self, to_phase: RoundPhase) -> None:
        old = self.state.phase
        self.state.phase = to_phase
        if to_phase is RoundPhase.COUNTDOWN:
            logger.info("Round %s -> countdown(%d)", old.value, self.state.countdown)
        else:
            logger.info("Round %s -> %s", old.value, to_phase.value)
        for listener in list(self._listeners):
            try:
                listener(old, to_phase, self.state)
            except Exception:
                logger.exception("Error in round listener")

    # --- background work ---

    def _spawn(self, coro: Coroutine[Any, Any, Any], what: str) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, skipped %s", what)
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background work (ghost loads, death records)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Tear the round down: back to IDLE, pending ghost loads dropped, background work cancelled."""
        self._ghost_generation += 1
        self._ghosts_locked = True
        if self.state.phase in (RoundPhase.COUNTDOWN, RoundPhase.RUNNING):
            self._transition(RoundPhase.IDLE)
        await self.aclose()

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _load_ghosts(self, generation: int) -> None:
        assert self.ghosts is not None
        user_id = self.identity.id if self.identity else None
        ghost_set = await self.ghosts.load(user_id)
        self.apply_ghosts(generation, ghost_set)

    def apply_ghosts(self, generation: int, ghost_set: GhostSet) -> bool:
        """One-shot completion for a ghost load. Late or superseded results are dropped."""
        if generation != self._ghost_generation or self._ghosts_locked:
            logger.debug("Discarding ghost set from load #%d (%d ghosts)", generation, len(ghost_set))
            return False
        self.ghost_set = ghost_set
        return True

    async def _record_death(self, identity: Identity, score: int, position: Position) -> None:
        assert self.recorder is not None
        self.last_death_id = await self.recorder.record(identity, score, position)

    # --- inputs ---

    def start(self) -> bool:
        if self.state.phase not in (RoundPhase.IDLE, RoundPhase.GAME_OVER):
            logger.debug("start ignored in %s", self.state.phase.value)
            return False

        self._ghost_generation += 1
        self._ghosts_locked = False
        self.ghost_set = EMPTY_GHOSTS
        self.state.countdown = max(0, self.countdown_from)
        self._transition(RoundPhase.COUNTDOWN)

        if self.ghosts is not None:
            self._spawn(self._load_ghosts(self._ghost_generation), "ghost load")
        if self.state.countdown == 0:
            self._begin_running()
        return True

    def countdown_step(self) -> bool:
        if self.state.phase is not RoundPhase.COUNTDOWN:
            return False
        self.state.countdown -= 1
        if self.state.countdown > 0:
            self._transition(RoundPhase.COUNTDOWN)
        else:
            self._begin_running()
        return True

    def jump(self) -> bool:
        if self.state.phase is not RoundPhase.RUNNING:
            logger.debug("jump ignored in %s", self.state.phase.value)
            return False
        self.kinematics.jump()
        return True

    def _begin_running(self) -> None:
        c = self.constants
        s = self.state
        s.countdown = 0
        s.body = PlayerBody.spawn(c)
        self.kinematics = Kinematics.for_body(s.body, c)
        s.obstacles = []
        s.world_offset = 0.0
        s.score = 0
        s.tick_count = 0
        s.last_collision = NO_COLLISION
        self.generator.reset()
        self.scores.reset()
        self._ghosts_locked = True
        self.kinematics.jump()
        self._transition(RoundPhase.RUNNING)

    # --- simulation ---

    def tick(self) -> CollisionResult:
        s = self.state
        if s.phase is not RoundPhase.RUNNING:
            if __debug__:
                raise TickOutsideRunning(f"tick() called in phase {s.phase.value}")
            return s.last_collision

        c = self.constants
        self.kinematics.tick()
        s.world_offset += c.scroll_speed
        s.tick_count += 1

        obstacle = self.generator.maybe_spawn(s.world_offset)
        if obstacle is not None:
            s.obstacles.append(obstacle)
        s.obstacles = prune(s.obstacles, s.world_offset, c.obstacle_width)

        mark_passed(s.obstacles, s.world_offset, s.body.x, self.scores)
        s.score = self.scores.current

        result = detect_collision(s.body, s.obstacles, s.world_offset, c)
        if result.collided:
            self._game_over(result)
        return result

    def _game_over(self, result: CollisionResult) -> None:
        s = self.state
        if s.phase is RoundPhase.GAME_OVER:
            return
        s.last_collision = result
        self._transition(RoundPhase.GAME_OVER)
        logger.info("Round over: %s at tick %d, score %d", result.kind, s.tick_count, s.score)

        if self.identity is not None and self.recorder is not None:
            position = Position(x=s.world_offset + s.body.x, y=s.body.y)
            self._spawn(self._record_death(self.identity, s.score, position), "death record")

        if self.scores.commit():
            logger.info("New best score %d", self.scores.best)
            self._spawn(self.scores.save_best(), "best score save")

    # --- presentation ---

    def snapshot(self) -> dict[str, Any]:
        c = self.constants
        s = self.state
        return {
            "phase": s.phase.value,
            "countdown": s.countdown,
            "tick": s.tick_count,
            "world_offset": s.world_offset,
            "score": s.score,
            "best": self.scores.best,
            "player": {
                "x": s.body.x,
                "y": round(s.body.y, 3),
                "width": s.body.width,
                "height": s.body.height,
                "velocity": round(s.body.velocity, 3),
            },
            "obstacles": [
                {
                    "x": o.screen_x(s.world_offset),
                    "world_x": o.world_x,
                    "gap_y": o.gap_center_y,
                    "gap_size": c.gap_size,
                    "width": c.obstacle_width,
                    "passed": o.passed,
                }
                for o in s.obstacles
            ],
            "ghosts": [
                {
                    "id": record.id,
                    "owner_id": record.owner_id,
                    "display_name": record.display_name,
                    "avatar_ref": record.avatar_ref,
                    "score": record.score,
                    "x": screen_x,
                    "y": screen_y,
                }
                for record, screen_x, screen_y in ghost_view.visible(
                    self.ghost_set, s.world_offset, c.viewport_width, self.ghost_view_margin
                )
            ],
            "collision": s.last_collision.kind,
        }
