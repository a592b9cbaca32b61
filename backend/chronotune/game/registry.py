from __future__ import annotations

import logging
import random
import string
from threading import RLock

from .models import Game, Player, Room
from .results import ActionResult, Failure


logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 4
SINGLEPLAYER_PREFIX = "SP"


def clean_name(raw: object, max_length: int = 20) -> str | None:
    """Trim and truncate a display name; ``None`` when unusable."""
    n = str(raw or "").strip()[:max_length].strip()
    if not n:
        return None
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return None
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return None
    return n


def validate_name(raw: object, max_length: int = 20) -> tuple[str | None, ActionResult | None]:
    if not str(raw or "").strip():
        return None, ActionResult.failure(Failure.NAME_REQUIRED, "Name required")
    name = clean_name(raw, max_length)
    if name is None:
        return None, ActionResult.failure(Failure.INVALID_NAME, "Invalid name")
    return name, None


def normalize_code(raw: object) -> str:
    return str(raw or "").strip().upper()


class RoomRegistry:
    """Process-wide room table plus the connection -> room membership.

    The registry lock only guards its own dictionaries; room contents are
    guarded by each room's lock.
    """

    def __init__(self, capacity: int = 8, rng: random.Random | None = None) -> None:
        self.capacity = capacity
        self._rng = rng or random.SystemRandom()
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._memberships: dict[str, str] = {}

    def _make_code(self, prefix: str = "") -> str:
        return prefix + "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def create_room(self, host_sid: str, host_name: str, singleplayer: bool = False) -> Room:
        with self._lock:
            prefix = SINGLEPLAYER_PREFIX if singleplayer else ""
            code = self._make_code(prefix)
            while code in self._rooms:
                code = self._make_code(prefix)

            room = Room(
                code=code,
                host_sid=host_sid,
                players=[Player(sid=host_sid, name=host_name)],
                game=Game(singleplayer=singleplayer),
            )
            self._rooms[code] = room
            self._memberships[host_sid] = code

        logger.info("[room-create] room=%s host=%s singleplayer=%s", code, host_name, singleplayer)
        return room

    def get_room(self, code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(normalize_code(code))

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def delete_room(self, code: str) -> bool:
        with self._lock:
            room = self._rooms.pop(code, None)
            for sid in [s for s, c in self._memberships.items() if c == code]:
                del self._memberships[sid]
        if room is None:
            return False

        with room.lock:
            room.closed = True
            if room.game.challenge_timer is not None:
                room.game.challenge_timer.cancel()
                room.game.challenge_timer = None

        logger.info("[room-delete] room=%s", code)
        return True

    def room_of(self, sid: str) -> Room | None:
        with self._lock:
            code = self._memberships.get(sid)
            return self._rooms.get(code) if code else None

    def release(self, sid: str) -> str | None:
        """Forget the connection's membership and return the room code it had."""
        with self._lock:
            return self._memberships.pop(sid, None)

    def check_join(self, room: Room | None, name: str) -> ActionResult:
        if room is None:
            return ActionResult.failure(Failure.ROOM_NOT_FOUND, "Room not found")
        with room.lock:
            if room.closed:
                return ActionResult.failure(Failure.ROOM_NOT_FOUND, "Room not found")
            if len(room.players) >= self.capacity:
                return ActionResult.failure(Failure.ROOM_FULL, f"Room full (max {self.capacity})")
            if room.player_by_name(name) is not None:
                return ActionResult.failure(Failure.NAME_TAKEN, "Name already taken")
            if room.game.singleplayer:
                return ActionResult.failure(
                    Failure.SINGLEPLAYER_ROOM, "That room is singleplayer-only."
                )
        return ActionResult.success(roomCode=room.code)

    def add_player(self, room: Room, sid: str, name: str) -> ActionResult:
        with room.lock:
            # State may have moved since check_join, so validate again under the lock.
            result = self.check_join(room, name)
            if not result.ok:
                return result
            room.players.append(Player(sid=sid, name=name))

        with self._lock:
            self._memberships[sid] = room.code

        logger.info("[room-join] room=%s name=%s players=%d", room.code, name, len(room.players))
        return result
