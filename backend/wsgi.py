"""WSGI entry for process managers, e.g. ``gunicorn -k eventlet -w 1 backend.wsgi:app``.

Rooms live in process memory, so run a single worker.
"""

from dotenv import load_dotenv

load_dotenv()

try:
    from backend.chronotune.server import create_app
except ImportError:  # pragma: no cover
    from chronotune.server import create_app

app, socketio = create_app()
