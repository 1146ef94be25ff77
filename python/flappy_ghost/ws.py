from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from flappy_ghost.game.round import RoundStateMachine
from flappy_ghost.game.session_manager import SessionManager
from flappy_ghost.game.types import Identity, RoundPhase

logger = logging.getLogger(__name__)


def _sanitize_text(value: Any, limit: int) -> str:
    if not isinstance(value, str):
        return ""
    value = value.strip()
    if len(value) > limit:
        return value[:limit]
    return value


def _sanitize_id(value: Any) -> str:
    raw = _sanitize_text(value, 64)
    safe = [ch for ch in raw if ch.isalnum() or ch in ("-", "_")]
    return "".join(safe)


def parse_identity(payload: Any) -> Identity | None:
    """Identity from a hello payload; None means anonymous play."""
    if not isinstance(payload, dict):
        return None
    user_id = _sanitize_id(payload.get("id"))
    if not user_id:
        return None
    return Identity(
        id=user_id,
        display_name=_sanitize_text(payload.get("display_name"), 32) or user_id,
        avatar_ref=_sanitize_text(payload.get("avatar_ref"), 256),
    )


async def handle_ws(ws: WebSocket, sessions: SessionManager) -> None:
    await ws.accept()
    session_id: str | None = None

    async def send_snapshot(machine: RoundStateMachine) -> None:
        await ws.send_json({"type": "state.snapshot", "payload": machine.snapshot()})

    async def send_phase(machine: RoundStateMachine, phase: RoundPhase, countdown: int) -> None:
        await ws.send_json(
            {
                "type": "round.phase",
                "payload": {
                    "phase": phase.value,
                    "countdown": countdown,
                    "score": machine.state.score,
                    "best": machine.scores.best,
                    "collision": machine.state.last_collision.kind,
                },
            }
        )

    try:
        raw = await ws.receive_text()
        try:
            msg = json.loads(raw)
        except ValueError:
            msg = None
        if not isinstance(msg, dict) or msg.get("type") != "hello":
            await ws.send_json({"type": "event.error", "payload": {"code": "bad_hello"}})
            await ws.close()
            return
        identity = parse_identity(msg.get("payload") or {})

        session = await sessions.create(identity, on_frame=send_snapshot, on_phase=send_phase)
        session_id = session.session_id

        await ws.send_json(
            {
                "type": "welcome",
                "payload": {
                    "session_id": session_id,
                    "anonymous": identity is None,
                    "phase": session.machine.phase.value,
                    "best": session.machine.scores.best,
                },
            }
        )

        while True:
            data = await ws.receive_json()
            if not isinstance(data, dict):
                continue
            t = data.get("type")
            if t == "round.start":
                session.driver.start()
            elif t == "input.jump":
                session.driver.jump()
            elif t == "state.get":
                await send_snapshot(session.machine)
            else:
                await ws.send_json({"type": "event.notice", "payload": {"code": "unknown_type", "type": t}})
    except WebSocketDisconnect:
        logger.debug("Client disconnected (session %s)", session_id)
    except Exception:
        logger.exception("WebSocket session %s failed", session_id)
    finally:
        if session_id is not None:
            await sessions.close(session_id)
