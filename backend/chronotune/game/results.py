from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Failure(str, Enum):
    NAME_REQUIRED = "name_required"
    INVALID_NAME = "invalid_name"
    ROOM_CODE_REQUIRED = "room_code_required"
    ROOM_NOT_FOUND = "room_not_found"
    NOT_IN_ROOM = "not_in_room"
    ALREADY_IN_ROOM = "already_in_room"
    ROOM_FULL = "room_full"
    NAME_TAKEN = "name_taken"
    SINGLEPLAYER_ROOM = "singleplayer_room"
    ONLY_HOST = "only_host"
    NO_SONGS = "no_songs"
    NOT_ENOUGH_SONGS = "not_enough_songs"
    ALREADY_STARTED = "already_started"
    NOT_STARTED = "not_started"
    NO_ACTIVE_PLAYER = "no_active_player"
    NOT_YOUR_TURN = "not_your_turn"
    ACTIVE_CANNOT_CHALLENGE = "active_cannot_challenge"
    NO_CURRENT_CARD = "no_current_card"
    WRONG_PHASE = "wrong_phase"
    NO_PLAYABLE_MEDIA = "no_playable_media"
    INSUFFICIENT_TOKENS = "insufficient_tokens"
    DECK_EMPTY = "deck_empty"
    NO_CHALLENGES_IN_SINGLEPLAYER = "no_challenges_in_singleplayer"
    SLOT_RESERVED = "slot_reserved"
    SLOT_TAKEN = "slot_taken"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a room action.

    Either ``ok`` with an optional payload, or a ``Failure`` reason with a
    message meant for players.
    """

    ok: bool
    reason: Failure | None = None
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **payload: Any) -> "ActionResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, reason: Failure, message: str) -> "ActionResult":
        return cls(ok=False, reason=reason, message=message)

    def to_ack(self) -> dict:
        if self.ok:
            return {"ok": True, **self.payload}
        return {
            "ok": False,
            "error": self.message,
            "code": self.reason.value if self.reason else None,
        }
