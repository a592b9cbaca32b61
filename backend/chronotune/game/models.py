from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Literal, Protocol


Phase = Literal["WAIT_PLAY", "PLAYING", "CHALLENGING"]


class TaskHandle(Protocol):
    def cancel(self) -> None: ...


@dataclass(frozen=True)
class Song:
    id: str
    title: str
    year: int
    artists: tuple[str, ...]
    search_query: str
    media_id: str | None = None

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "year": self.year,
            "artists": list(self.artists),
        }


@dataclass
class Player:
    sid: str
    name: str
    tokens: int = 0
    timeline: list[Song] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass
class ActiveGuess:
    placement_index: int
    title_guess: str
    artist_guess: str
    submitted_at_ms: int


@dataclass
class Challenge:
    name: str
    placement_index: int
    submitted_at_ms: int

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass
class ChallengeResult:
    name: str
    placement_index: int
    correct: bool


@dataclass
class RoundReveal:
    song: Song
    correct_min_index: int
    correct_max_index: int
    active_chosen_index: int | None
    active_placement_correct: bool
    title_ok: bool
    artist_ok: bool
    token_awarded: bool
    winner: str | None
    winner_type: Literal["active", "challenger"] | None
    challenge_results: list[ChallengeResult] = field(default_factory=list)

    def to_public(self) -> dict:
        return {
            "song": {
                "title": self.song.title,
                "artists": list(self.song.artists),
                "year": self.song.year,
            },
            "correctMinIndex": self.correct_min_index,
            "correctMaxIndex": self.correct_max_index,
            "activeChosenIndex": self.active_chosen_index,
            "activePlacementCorrect": self.active_placement_correct,
            "titleOk": self.title_ok,
            "artistOk": self.artist_ok,
            "tokenAwarded": self.token_awarded,
            "winner": self.winner,
            "winnerType": self.winner_type,
            "challengeResults": [
                {"name": c.name, "placementIndex": c.placement_index, "correct": c.correct}
                for c in self.challenge_results
            ],
        }


@dataclass
class NoteReveal:
    note: str

    def to_public(self) -> dict:
        return {"note": self.note}


@dataclass
class Game:
    started: bool = False
    over: bool = False
    deck: list[Song] = field(default_factory=list)
    turn_index: int = 0
    current_card: Song | None = None
    phase: Phase = "WAIT_PLAY"
    media_id: str | None = None
    last_reveal: RoundReveal | NoteReveal | None = None
    card_nonce: int = 0
    active_guess: ActiveGuess | None = None
    challenges: list[Challenge] = field(default_factory=list)
    challenge_ends_at_ms: int | None = None
    # Lower-cased names that already paid for a challenge this round
    challenge_spent: set[str] = field(default_factory=set)
    challenge_timer: TaskHandle | None = None
    singleplayer: bool = False


@dataclass
class Room:
    code: str
    host_sid: str
    players: list[Player] = field(default_factory=list)
    game: Game = field(default_factory=Game)
    closed: bool = False
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    def player_by_sid(self, sid: str) -> Player | None:
        for p in self.players:
            if p.sid == sid:
                return p
        return None

    def player_by_name(self, name: str) -> Player | None:
        key = (name or "").lower()
        for p in self.players:
            if p.key == key:
                return p
        return None

    @property
    def host(self) -> Player | None:
        return self.player_by_sid(self.host_sid)

    @property
    def active_player(self) -> Player | None:
        if not self.players:
            return None
        if 0 <= self.game.turn_index < len(self.players):
            return self.players[self.game.turn_index]
        return None
