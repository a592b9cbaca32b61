from __future__ import annotations

import logging

from flask_socketio import SocketIO

from ..game.models import Room
from ..game.snapshot import room_public_state


logger = logging.getLogger(__name__)


class SocketIOPublisher:
    """Pushes room snapshots and audio directives to everyone in a room.

    Emits are best-effort: a failed emit is logged and never reaches the
    action that triggered it.
    """

    def __init__(self, socketio: SocketIO) -> None:
        self._socketio = socketio

    def _emit(self, event: str, payload: dict | None, room: Room) -> None:
        try:
            if payload is None:
                self._socketio.emit(event, to=room.code)
            else:
                self._socketio.emit(event, payload, to=room.code)
        except Exception:
            logger.exception("[emit-failed] event=%s room=%s", event, room.code)

    def publish_state(self, room: Room) -> None:
        self._emit("state:update", room_public_state(room), room)

    def play(self, room: Room, media_id: str, start_at_ms: int) -> None:
        self._emit("audio:play", {"mediaId": media_id, "startAt": start_at_ms}, room)

    def stop(self, room: Room) -> None:
        self._emit("audio:stop", None, room)
