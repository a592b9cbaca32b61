from __future__ import annotations

import random
import sys

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.deck import load_songs
from .game.engine import GameEngine, Resolver, Scheduler
from .game.registry import RoomRegistry
from .game.resolver import IdentifierResolver
from .realtime.handlers import register_socketio_handlers
from .realtime.publisher import SocketIOPublisher
from .realtime.scheduler import BackgroundScheduler
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp


def _pick_async_mode(configured: str) -> str:
    if configured:
        return configured
    # Default choice:
    # - Windows: threading (eventlet has known compatibility issues on newer Python)
    # - Python >= 3.13: threading (safer default)
    # - Otherwise: eventlet
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(
    config_class=Config,
    *,
    resolver: Resolver | None = None,
    scheduler: Scheduler | None = None,
    rng: random.Random | None = None,
) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(config_class)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_pick_async_mode(app.config.get("SOCKETIO_ASYNC_MODE", "")),
    )

    songs = load_songs(app.config["SONGS_PATH"])
    if not songs:
        app.logger.warning("No songs loaded. Put a song list at %s and restart.", app.config["SONGS_PATH"])

    if resolver is None:
        resolver = IdentifierResolver(
            timeout=float(app.config.get("RESOLVER_TIMEOUT_SEC", 8)),
            cache_size=int(app.config.get("RESOLVER_CACHE_SIZE", 3000)),
        )

    publisher = SocketIOPublisher(socketio)
    registry = RoomRegistry(capacity=int(app.config.get("ROOM_CAPACITY", 8)), rng=rng)
    engine = GameEngine.from_config(
        app.config,
        songs,
        resolver,
        publisher,
        scheduler or BackgroundScheduler(socketio),
        rng=rng,
    )
    app.extensions["chronotune"] = {"registry": registry, "engine": engine}

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")

    register_socketio_handlers(
        socketio,
        registry,
        engine,
        publisher,
        max_name_length=int(app.config.get("MAX_NAME_LENGTH", 20)),
    )

    return app, socketio
