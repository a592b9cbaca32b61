from __future__ import annotations

import logging
from threading import Event
from typing import Any, Callable

from flask_socketio import SocketIO


logger = logging.getLogger(__name__)


class ScheduledTask:
    def __init__(self) -> None:
        self._cancelled = Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class BackgroundScheduler:
    """Delayed calls on Socket.IO background tasks (green threads under eventlet)."""

    def __init__(self, socketio: SocketIO) -> None:
        self._socketio = socketio

    def call_later(self, delay_sec: float, fn: Callable[..., Any], *args: Any) -> ScheduledTask:
        task = ScheduledTask()

        def _runner() -> None:
            self._socketio.sleep(delay_sec)
            if task.cancelled:
                return
            try:
                fn(*args)
            except Exception:
                logger.exception("[timer-error] callback %r failed", fn)

        self._socketio.start_background_task(_runner)
        return task
