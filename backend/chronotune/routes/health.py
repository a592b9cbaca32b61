from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    services = current_app.extensions["chronotune"]
    return jsonify(
        {
            "ok": True,
            "songs": len(services["engine"].songs),
            "rooms": len(services["registry"].list_rooms()),
        }
    )
