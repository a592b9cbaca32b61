from __future__ import annotations

import logging
from typing import Callable

from flask import request
from flask_socketio import SocketIO, join_room, leave_room

from ..game.engine import GameEngine
from ..game.models import Room
from ..game.registry import RoomRegistry, normalize_code, validate_name
from ..game.results import ActionResult, Failure
from .publisher import SocketIOPublisher


logger = logging.getLogger(__name__)


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def register_socketio_handlers(
    socketio: SocketIO,
    registry: RoomRegistry,
    engine: GameEngine,
    publisher: SocketIOPublisher,
    max_name_length: int = 20,
) -> None:
    def _leave_current_room(sid: str) -> None:
        code = registry.release(sid)
        if not code:
            return

        leave_room(code, sid=sid)

        room = registry.get_room(code)
        if not room:
            return

        if engine.remove_player(room, sid):
            registry.delete_room(code)

    def _in_room(event: str, action: Callable[[Room, str], ActionResult]) -> dict:
        sid = request.sid
        room = registry.room_of(sid)
        if room is None:
            return ActionResult.failure(Failure.NOT_IN_ROOM, "Not in a room").to_ack()

        try:
            result = action(room, sid)
        except Exception:
            logger.exception("[%s] failed room=%s sid=%s", event, room.code, sid)
            return ActionResult.failure(Failure.INTERNAL, f"{event} failed").to_ack()

        if not result.ok:
            logger.debug("[%s] rejected room=%s sid=%s: %s", event, room.code, sid, result.message)
        return result.to_ack()

    @socketio.on("room:create")
    def room_create(data=None):
        payload = _payload(data)
        name, err = validate_name(payload.get("name"), max_name_length)
        if err:
            return err.to_ack()

        _leave_current_room(request.sid)

        room = registry.create_room(request.sid, name)
        join_room(room.code)

        publisher.publish_state(room)
        return ActionResult.success(roomCode=room.code).to_ack()

    @socketio.on("room:join")
    def room_join(data=None):
        payload = _payload(data)
        code = normalize_code(payload.get("roomCode"))
        if not code:
            return ActionResult.failure(Failure.ROOM_CODE_REQUIRED, "Room code required").to_ack()

        name, err = validate_name(payload.get("name"), max_name_length)
        if err:
            return err.to_ack()

        room = registry.get_room(code)
        if room is not None and registry.room_of(request.sid) is room:
            return ActionResult.failure(Failure.ALREADY_IN_ROOM, "Already in this room").to_ack()

        check = registry.check_join(room, name)
        if not check.ok:
            return check.to_ack()

        _leave_current_room(request.sid)

        result = registry.add_player(room, request.sid, name)
        if not result.ok:
            return result.to_ack()

        join_room(room.code)
        publisher.publish_state(room)
        return result.to_ack()

    @socketio.on("room:leave")
    def room_leave(data=None):
        if registry.room_of(request.sid) is None:
            return ActionResult.failure(Failure.NOT_IN_ROOM, "Not in a room").to_ack()
        _leave_current_room(request.sid)
        return ActionResult.success().to_ack()

    @socketio.on("single:start")
    def single_start(data=None):
        payload = _payload(data)
        name, err = validate_name(payload.get("name"), max_name_length)
        if err:
            return err.to_ack()

        _leave_current_room(request.sid)

        room = registry.create_room(request.sid, name, singleplayer=True)
        join_room(room.code)

        # Singleplayer rooms start right away.
        result = engine.start_game(room, request.sid)
        if not result.ok:
            if engine.remove_player(room, request.sid):
                registry.delete_room(room.code)
            leave_room(room.code)
            return result.to_ack()

        return ActionResult.success(roomCode=room.code).to_ack()

    @socketio.on("game:start")
    def game_start(data=None):
        return _in_room("game:start", engine.start_game)

    @socketio.on("turn:play")
    def turn_play(data=None):
        return _in_room("turn:play", engine.play)

    @socketio.on("turn:swap")
    def turn_swap(data=None):
        return _in_room("turn:swap", engine.skip)

    @socketio.on("turn:buyCard")
    def turn_buy_card(data=None):
        return _in_room("turn:buyCard", engine.buy_card)

    @socketio.on("turn:submitGuess")
    def turn_submit_guess(data=None):
        payload = _payload(data)
        return _in_room(
            "turn:submitGuess",
            lambda room, sid: engine.submit_guess(
                room,
                sid,
                payload.get("placementIndex"),
                payload.get("titleGuess", ""),
                payload.get("artistGuess", ""),
            ),
        )

    @socketio.on("turn:challenge")
    def turn_challenge(data=None):
        payload = _payload(data)
        return _in_room(
            "turn:challenge",
            lambda room, sid: engine.challenge(room, sid, payload.get("placementIndex")),
        )

    @socketio.on("disconnect")
    def on_disconnect(*args):
        _leave_current_room(request.sid)

