import os
from pathlib import Path


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Empty means: pick per platform in create_app
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Songs
    SONGS_PATH = os.environ.get(
        "SONGS_PATH",
        str(Path(__file__).resolve().parent / "data" / "songs.json"),
    )

    # Rooms
    ROOM_CAPACITY = int(os.environ.get("ROOM_CAPACITY", "8"))
    MAX_NAME_LENGTH = int(os.environ.get("MAX_NAME_LENGTH", "20"))

    # Tokens
    STARTING_TOKENS = int(os.environ.get("STARTING_TOKENS", "2"))
    SKIP_COST = int(os.environ.get("SKIP_COST", "1"))
    BUY_COST = int(os.environ.get("BUY_COST", "3"))
    CHALLENGE_COST = int(os.environ.get("CHALLENGE_COST", "1"))

    # Timing
    CHALLENGE_DURATION_SEC = int(os.environ.get("CHALLENGE_DURATION_SEC", "15"))
    AUDIO_START_BUFFER_MS = int(os.environ.get("AUDIO_START_BUFFER_MS", "800"))

    # Media lookup
    RESOLVER_TIMEOUT_SEC = float(os.environ.get("RESOLVER_TIMEOUT_SEC", "8"))
    RESOLVER_CACHE_SIZE = int(os.environ.get("RESOLVER_CACHE_SIZE", "3000"))
