import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger("chronotune")


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _wants_eventlet() -> bool:
    mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return mode == "eventlet"
    return mode in ("", "eventlet")


def main() -> None:
    # .env lives at the repo root, next to pyproject.toml
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")
    _configure_logging()

    if _wants_eventlet():
        import eventlet

        eventlet.monkey_patch()

    try:
        from backend.chronotune.server import create_app
    except ImportError:  # pragma: no cover
        from chronotune.server import create_app

    app, socketio = create_app()

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "5000"))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"

    logger.info(
        "[startup] listening on %s:%d async_mode=%s songs=%d",
        host, port, socketio.async_mode, len(app.extensions["chronotune"]["engine"].songs),
    )

    socketio.run(
        app,
        host=host,
        port=port,
        debug=debug,
        allow_unsafe_werkzeug=os.environ.get("ALLOW_UNSAFE_WERKZEUG", "1") == "1",
        use_reloader=os.environ.get("FLASK_USE_RELOADER", "0") == "1",
    )


if __name__ == "__main__":
    main()
