from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..game.snapshot import room_public_state

bp = Blueprint("rooms", __name__)


@bp.get("/rooms/<code>")
def get_room(code: str):
    registry = current_app.extensions["chronotune"]["registry"]
    room = registry.get_room(code)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(room_public_state(room))
