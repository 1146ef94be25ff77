from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from flappy_ghost.game.round import RoundStateMachine
from flappy_ghost.game.types import RoundPhase, RoundState

logger = logging.getLogger(__name__)

FrameCallback = Callable[[RoundStateMachine], Awaitable[None]]
PhaseCallback = Callable[[RoundStateMachine, RoundPhase, int], Awaitable[None]]


class RoundDriver:
    """Schedules countdown steps and per-frame ticks for one state machine.

    One tick per frame, no fixed-timestep catch-up: a slow frame simply slows
    the simulation down. The frame task only exists while the round is running.
    """

    def __init__(
        self,
        machine: RoundStateMachine,
        frame_hz: int = 60,
        countdown_interval: float = 1.0,
        on_frame: FrameCallback | None = None,
        on_phase: PhaseCallback | None = None,
    ) -> None:
        self.machine = machine
        self.frame_hz = frame_hz
        self.countdown_interval = countdown_interval
        self.on_frame = on_frame
        self.on_phase = on_phase
        self._frame_task: asyncio.Task[None] | None = None
        self._countdown_task: asyncio.Task[None] | None = None
        self._notify_tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        machine.add_listener(self._on_transition)

    @property
    def running(self) -> bool:
        return self._frame_task is not None and not self._frame_task.done()

    def start(self) -> bool:
        if self._closed:
            return False
        return self.machine.start()

    def jump(self) -> bool:
        if self._closed:
            return False
        return self.machine.jump()

    def frame(self) -> bool:
        """One scheduled frame. A no-op unless the round is running and the driver is open."""
        if self._closed or self.machine.phase is not RoundPhase.RUNNING:
            return False
        self.machine.tick()
        return True

    async def close(self, flush_timeout: float = 2.0) -> None:
        self._closed = True
        self.machine.remove_listener(self._on_transition)
        tasks = [t for t in (self._frame_task, self._countdown_task) if t is not None]
        tasks.extend(self._notify_tasks)
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        others = [t for t in tasks if t is not current]
        if others:
            await asyncio.gather(*others, return_exceptions=True)
        self._frame_task = None
        self._countdown_task = None
        if flush_timeout > 0:
            # let a pending death record land before tearing down
            try:
                await asyncio.wait_for(self.machine.drain(), timeout=flush_timeout)
            except asyncio.TimeoutError:
                logger.warning("Background work still pending after %.1fs, cancelling", flush_timeout)
        await self.machine.stop()

    def _on_transition(self, old: RoundPhase, new: RoundPhase, state: RoundState) -> None:
        if self._closed:
            return
        if new is RoundPhase.COUNTDOWN and old is not RoundPhase.COUNTDOWN:
            self._start_countdown()
        elif new is RoundPhase.RUNNING:
            self._start_frames()
        elif new is RoundPhase.GAME_OVER:
            self._stop_frames()
        elif new is RoundPhase.IDLE:
            self._stop_frames()
            self._stop_countdown()
        if self.on_phase is not None:
            # phase and countdown are captured now; the callback runs later
            callback = self.on_phase(self.machine, new, state.countdown)
            task = asyncio.get_running_loop().create_task(self._notify(callback))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_tasks.discard)

    async def _notify(self, pending: Awaitable[None]) -> None:
        try:
            await pending
        except Exception:
            logger.exception("Error in round callback")

    def _start_countdown(self) -> None:
        if self._countdown_task is not None and not self._countdown_task.done():
            self._countdown_task.cancel()
        self._countdown_task = asyncio.get_running_loop().create_task(self._run_countdown())

    def _stop_countdown(self) -> None:
        task = self._countdown_task
        self._countdown_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _start_frames(self) -> None:
        self._stop_frames()
        self._frame_task = asyncio.get_running_loop().create_task(self._run_frames())

    def _stop_frames(self) -> None:
        task = self._frame_task
        self._frame_task = None
        # a terminal tick runs inside the frame task; that task exits on its own
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_countdown(self) -> None:
        while not self._closed and self.machine.phase is RoundPhase.COUNTDOWN:
            await asyncio.sleep(self.countdown_interval)
            if self._closed or self.machine.phase is not RoundPhase.COUNTDOWN:
                return
            self.machine.countdown_step()

    def _owns_frames(self) -> bool:
        return not self._closed and self._frame_task is asyncio.current_task()

    async def _run_frames(self) -> None:
        # a task that was replaced by a newer round must never tick again
        frame_dt = 1.0 / max(1, self.frame_hz)
        last_frame = time.perf_counter()
        while self._owns_frames():
            now = time.perf_counter()
            elapsed = now - last_frame
            if elapsed < frame_dt:
                await asyncio.sleep(frame_dt - elapsed)
                continue
            last_frame = now
            if not self._owns_frames() or not self.frame():
                return
            if self.on_frame is not None:
                await self._notify(self.on_frame(self.machine))
            if self.machine.phase is not RoundPhase.RUNNING:
                return
