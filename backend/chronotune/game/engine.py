from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Mapping, Protocol

from . import deck as decks
from .matching import artist_guess_matches, is_close_enough
from .models import (
    ActiveGuess,
    Challenge,
    ChallengeResult,
    Game,
    NoteReveal,
    Player,
    Room,
    RoundReveal,
    Song,
    TaskHandle,
)
from .results import ActionResult, Failure


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class Publisher(Protocol):
    def publish_state(self, room: Room) -> None: ...

    def play(self, room: Room, media_id: str, start_at_ms: int) -> None: ...

    def stop(self, room: Room) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_sec: float, fn: Callable[..., Any], *args: Any) -> TaskHandle: ...


class Resolver(Protocol):
    def resolve(self, query: str | None) -> str | None: ...


def correct_insertion_range(timeline: list[Song], card: Song) -> tuple[int, int]:
    """Return the inclusive ``(min, max)`` insertion positions for ``card``.

    Any position inside a block of equal years is accepted, e.g. years
    ``[1999, 2001, 2001, 2004]`` and a 2001 card give ``(1, 3)``.
    """
    y = card.year
    n = len(timeline)

    first_ge = 0
    while first_ge < n and timeline[first_ge].year < y:
        first_ge += 1

    first_gt = first_ge
    while first_gt < n and timeline[first_gt].year <= y:
        first_gt += 1

    return first_ge, first_gt


def insert_into_timeline(timeline: list[Song], card: Song) -> list[Song]:
    """Insert after the last card of the same year (``range.max``)."""
    _, idx = correct_insertion_range(timeline, card)
    new_timeline = list(timeline)
    new_timeline.insert(idx, card)
    return new_timeline


def clamp_placement(value: Any, length: int) -> int:
    try:
        idx = int(value)
    except (TypeError, ValueError, OverflowError):
        idx = length
    return max(0, min(length, idx))


class GameEngine:
    """Turn and phase rules for a single room at a time.

    Every public method takes the room lock for its whole duration,
    including the media lookup done by ``play`` and ``skip``, so actions,
    the challenge timer and player removal never interleave.
    """

    def __init__(
        self,
        songs: list[Song],
        resolver: Resolver,
        publisher: Publisher,
        scheduler: Scheduler,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
        starting_tokens: int = 2,
        skip_cost: int = 1,
        buy_cost: int = 3,
        challenge_cost: int = 1,
        challenge_duration_sec: float = 15,
        audio_start_buffer_ms: int = 800,
    ) -> None:
        self.songs = list(songs)
        self._resolver = resolver
        self._publisher = publisher
        self._scheduler = scheduler
        self._rng = rng
        self._clock = clock
        self.starting_tokens = starting_tokens
        self.skip_cost = skip_cost
        self.buy_cost = buy_cost
        self.challenge_cost = challenge_cost
        self.challenge_duration_sec = challenge_duration_sec
        self.audio_start_buffer_ms = audio_start_buffer_ms

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        songs: list[Song],
        resolver: Resolver,
        publisher: Publisher,
        scheduler: Scheduler,
        rng: random.Random | None = None,
    ) -> "GameEngine":
        return cls(
            songs,
            resolver,
            publisher,
            scheduler,
            rng=rng,
            starting_tokens=int(config.get("STARTING_TOKENS", 2)),
            skip_cost=int(config.get("SKIP_COST", 1)),
            buy_cost=int(config.get("BUY_COST", 3)),
            challenge_cost=int(config.get("CHALLENGE_COST", 1)),
            challenge_duration_sec=float(config.get("CHALLENGE_DURATION_SEC", 15)),
            audio_start_buffer_ms=int(config.get("AUDIO_START_BUFFER_MS", 800)),
        )

    # ---- helpers (caller holds room.lock) ----

    @staticmethod
    def _cancel_timer(game: Game) -> None:
        if game.challenge_timer is not None:
            game.challenge_timer.cancel()
            game.challenge_timer = None

    def _clear_round(self, game: Game) -> None:
        game.active_guess = None
        game.challenges = []
        game.challenge_ends_at_ms = None
        game.challenge_spent = set()
        self._cancel_timer(game)

    @staticmethod
    def _advance_turn(room: Room) -> None:
        if not room.players:
            return
        room.game.turn_index = (room.game.turn_index + 1) % len(room.players)

    @staticmethod
    def _draw_next(room: Room) -> None:
        game = room.game
        game.current_card = decks.draw(game.deck)
        game.card_nonce += 1
        if game.current_card is None:
            game.over = True
            logger.info("[deck-empty] room=%s game over", room.code)

    def _media_for(self, card: Song) -> str | None:
        if card.media_id and decks.is_media_id(card.media_id):
            return card.media_id
        return self._resolver.resolve(card.search_query)

    def _start_audio(self, room: Room, media_id: str) -> None:
        self._publisher.play(room, media_id, self._clock() + self.audio_start_buffer_ms)

    @staticmethod
    def _check_turn(room: Room, sid: str, verb: str) -> tuple[Player | None, ActionResult | None]:
        if room.closed:
            return None, ActionResult.failure(Failure.ROOM_NOT_FOUND, "Room not found")
        if not room.game.started:
            return None, ActionResult.failure(Failure.NOT_STARTED, "Game not started")
        active = room.active_player
        if active is None:
            return None, ActionResult.failure(Failure.NO_ACTIVE_PLAYER, "No active player")
        if active.sid != sid:
            return None, ActionResult.failure(Failure.NOT_YOUR_TURN, f"Only the active player can {verb}")
        return active, None

    # ---- actions ----

    def start_game(self, room: Room, sid: str) -> ActionResult:
        with room.lock:
            if room.closed:
                return ActionResult.failure(Failure.ROOM_NOT_FOUND, "Room not found")
            if room.host_sid != sid:
                return ActionResult.failure(Failure.ONLY_HOST, "Only host can start")

            game = room.game
            if game.started and not game.over:
                return ActionResult.failure(Failure.ALREADY_STARTED, "Game already in progress")
            if not self.songs:
                return ActionResult.failure(Failure.NO_SONGS, "No songs loaded on server")
            if len(self.songs) < len(room.players) + 1:
                return ActionResult.failure(Failure.NOT_ENOUGH_SONGS, "Not enough songs to start.")

            deck = decks.shuffled(self.songs, self._rng)
            for p in room.players:
                p.tokens = self.starting_tokens
                p.timeline = [decks.draw(deck)]

            game.started = True
            game.over = False
            game.deck = deck
            game.turn_index = 0
            game.phase = "WAIT_PLAY"
            game.media_id = None
            game.last_reveal = None
            self._clear_round(game)
            self._draw_next(room)

            logger.info(
                "[game-start] room=%s players=%d deck=%d singleplayer=%s",
                room.code, len(room.players), len(game.deck), game.singleplayer,
            )
            self._publisher.publish_state(room)
            return ActionResult.success()

    def play(self, room: Room, sid: str) -> ActionResult:
        with room.lock:
            _, err = self._check_turn(room, sid, "play")
            if err:
                return err

            game = room.game
            if game.current_card is None:
                return ActionResult.failure(Failure.NO_CURRENT_CARD, "No current card available")
            if game.phase != "WAIT_PLAY":
                return ActionResult.failure(Failure.WRONG_PHASE, "Not in play-ready phase")

            media_id = self._media_for(game.current_card)
            if not media_id:
                return ActionResult.failure(
                    Failure.NO_PLAYABLE_MEDIA, "Could not find a playable result for this song"
                )

            game.media_id = media_id
            game.phase = "PLAYING"
            game.last_reveal = None
            self._clear_round(game)

            self._start_audio(room, media_id)
            self._publisher.publish_state(room)
            return ActionResult.success()

    def skip(self, room: Room, sid: str) -> ActionResult:
        with room.lock:
            active, err = self._check_turn(room, sid, "skip")
            if err:
                return err

            game = room.game
            if game.phase != "PLAYING":
                return ActionResult.failure(
                    Failure.WRONG_PHASE, "You can only skip while the song is playing"
                )
            if active.tokens < self.skip_cost:
                return ActionResult.failure(
                    Failure.INSUFFICIENT_TOKENS, f"Need {self.skip_cost} token to skip"
                )
            if not game.deck:
                return ActionResult.failure(Failure.DECK_EMPTY, "Deck empty")

            active.tokens -= self.skip_cost
            self._publisher.stop(room)

            self._draw_next(room)
            self._clear_round(game)

            media_id = self._media_for(game.current_card)
            game.media_id = media_id
            if not media_id:
                game.last_reveal = NoteReveal(
                    "Skipped, but could not find a playable result for the next song."
                )
                logger.warning("[skip-degraded] room=%s card=%s", room.code, game.current_card.id)
                self._publisher.publish_state(room)
                return ActionResult.success(playable=False)

            game.last_reveal = NoteReveal(f"Skipped song (spent {self.skip_cost} token).")
            self._start_audio(room, media_id)
            self._publisher.publish_state(room)
            return ActionResult.success(playable=True)

    def buy_card(self, room: Room, sid: str) -> ActionResult:
        with room.lock:
            active, err = self._check_turn(room, sid, "buy")
            if err:
                return err

            game = room.game
            if game.phase != "WAIT_PLAY":
                return ActionResult.failure(Failure.WRONG_PHASE, "You can only buy before you press Play")
            if active.tokens < self.buy_cost:
                return ActionResult.failure(
                    Failure.INSUFFICIENT_TOKENS, f"Need {self.buy_cost} tokens to buy a card"
                )
            card = game.current_card
            if card is None:
                return ActionResult.failure(Failure.NO_CURRENT_CARD, "No current card")

            active.tokens -= self.buy_cost
            active.timeline = insert_into_timeline(active.timeline, card)
            game.last_reveal = NoteReveal(
                f"Bought card for {self.buy_cost} tokens: "
                f"{card.title} - {', '.join(card.artists)} ({card.year})"
            )

            self._advance_turn(room)
            self._draw_next(room)

            logger.info("[buy] room=%s player=%s card=%s", room.code, active.name, card.id)
            self._publisher.publish_state(room)
            return ActionResult.success()

    def submit_guess(
        self,
        room: Room,
        sid: str,
        placement_index: Any,
        title_guess: Any = "",
        artist_guess: Any = "",
    ) -> ActionResult:
        with room.lock:
            active, err = self._check_turn(room, sid, "submit")
            if err:
                return err

            game = room.game
            if game.phase != "PLAYING":
                return ActionResult.failure(Failure.WRONG_PHASE, "You must press play first")
            if game.current_card is None:
                return ActionResult.failure(Failure.NO_CURRENT_CARD, "No current card")

            game.active_guess = ActiveGuess(
                placement_index=clamp_placement(placement_index, len(active.timeline)),
                title_guess=str(title_guess or ""),
                artist_guess=str(artist_guess or ""),
                submitted_at_ms=self._clock(),
            )
            self._publisher.stop(room)

            game.challenges = []
            game.challenge_spent = set()
            self._cancel_timer(game)

            if game.singleplayer:
                self._resolve_locked(room)
                return ActionResult.success()

            game.phase = "CHALLENGING"
            game.challenge_ends_at_ms = self._clock() + int(self.challenge_duration_sec * 1000)
            game.challenge_timer = self._scheduler.call_later(
                self.challenge_duration_sec, self._on_challenge_deadline, room, game.card_nonce
            )
            logger.info(
                "[timer-set] room=%s nonce=%d deadline=%d",
                room.code, game.card_nonce, game.challenge_ends_at_ms,
            )

            self._publisher.publish_state(room)
            return ActionResult.success()

    def challenge(self, room: Room, sid: str, placement_index: Any) -> ActionResult:
        with room.lock:
            if room.closed:
                return ActionResult.failure(Failure.ROOM_NOT_FOUND, "Room not found")

            game = room.game
            if not game.started:
                return ActionResult.failure(Failure.NOT_STARTED, "Game not started")
            if game.singleplayer:
                return ActionResult.failure(
                    Failure.NO_CHALLENGES_IN_SINGLEPLAYER, "No challenges in singleplayer"
                )
            if game.phase != "CHALLENGING":
                return ActionResult.failure(Failure.WRONG_PHASE, "Not in challenge phase")

            active = room.active_player
            if active is None:
                return ActionResult.failure(Failure.NO_ACTIVE_PLAYER, "No active player")
            if active.sid == sid:
                return ActionResult.failure(
                    Failure.ACTIVE_CANNOT_CHALLENGE, "Active player cannot challenge"
                )
            if game.active_guess is None:
                return ActionResult.failure(Failure.WRONG_PHASE, "No active guess to challenge")

            challenger = room.player_by_sid(sid)
            if challenger is None:
                return ActionResult.failure(Failure.NOT_IN_ROOM, "Player not found")

            idx = clamp_placement(placement_index, len(active.timeline))
            if idx == game.active_guess.placement_index:
                return ActionResult.failure(
                    Failure.SLOT_RESERVED, "You can't challenge the spot the active player chose."
                )

            key = challenger.key
            if any(c.placement_index == idx and c.key != key for c in game.challenges):
                return ActionResult.failure(
                    Failure.SLOT_TAKEN, "That spot is already challenged by someone else."
                )

            if key not in game.challenge_spent:
                if challenger.tokens < self.challenge_cost:
                    return ActionResult.failure(
                        Failure.INSUFFICIENT_TOKENS,
                        f"Need {self.challenge_cost} token to challenge",
                    )
                challenger.tokens -= self.challenge_cost
                game.challenge_spent.add(key)

            entry = Challenge(name=challenger.name, placement_index=idx, submitted_at_ms=self._clock())
            for i, c in enumerate(game.challenges):
                if c.key == key:
                    game.challenges[i] = entry
                    break
            else:
                game.challenges.append(entry)

            self._publisher.publish_state(room)
            return ActionResult.success()

    def remove_player(self, room: Room, sid: str) -> bool:
        """Drop a player from the room; returns True when the room is now empty."""
        with room.lock:
            idx = next((i for i, p in enumerate(room.players) if p.sid == sid), None)
            if idx is None:
                return not room.players

            player = room.players.pop(idx)
            if not room.players:
                # Closed before the lock is released so no join slips in ahead of deletion.
                room.closed = True
                self._cancel_timer(room.game)
                return True

            game = room.game
            if room.host_sid == sid:
                room.host_sid = room.players[idx % len(room.players)].sid

            game.challenges = [c for c in game.challenges if c.key != player.key]
            game.challenge_spent.discard(player.key)

            was_active = idx == game.turn_index
            if idx < game.turn_index:
                game.turn_index -= 1
            game.turn_index %= len(room.players)

            if game.started and was_active and game.phase != "WAIT_PLAY":
                self._cancel_round(room, player)

            self._publisher.publish_state(room)
            return False

    # ---- resolution ----

    def _cancel_round(self, room: Room, leaver: Player) -> None:
        game = room.game
        self._clear_round(game)
        self._publisher.stop(room)
        game.phase = "WAIT_PLAY"
        game.media_id = None
        game.last_reveal = NoteReveal(f"{leaver.name} left, the round was cancelled.")
        self._draw_next(room)
        logger.info("[round-cancel] room=%s leaver=%s", room.code, leaver.name)

    def _on_challenge_deadline(self, room: Room, expected_nonce: int) -> None:
        with room.lock:
            game = room.game
            logger.info(
                "[timer-fire] room=%s expected_nonce=%d nonce=%d phase=%s",
                room.code, expected_nonce, game.card_nonce, game.phase,
            )
            if room.closed or game.phase != "CHALLENGING" or game.card_nonce != expected_nonce:
                logger.info("[timer-abort] room=%s stale deadline", room.code)
                return
            game.challenge_timer = None
            self._resolve_locked(room)

    def _resolve_locked(self, room: Room) -> None:
        game = room.game
        active = room.active_player
        card = game.current_card
        if active is None or card is None:
            return

        self._cancel_timer(game)

        lo, hi = correct_insertion_range(active.timeline, card)
        guess = game.active_guess
        chosen = guess.placement_index if guess else None
        active_correct = chosen is not None and lo <= chosen <= hi

        winner: Player | None = None
        winner_type = None
        if active_correct:
            winner, winner_type = active, "active"
        elif not game.singleplayer:
            correct = [c for c in game.challenges if lo <= c.placement_index <= hi]
            # sorted() is stable: equal timestamps keep entry order
            correct = sorted(correct, key=lambda c: c.submitted_at_ms)
            for c in correct:
                winner = room.player_by_name(c.name)
                if winner is not None:
                    winner_type = "challenger"
                    break

        title_ok = is_close_enough(guess.title_guess if guess else "", card.title)
        artist_ok = artist_guess_matches(guess.artist_guess if guess else "", card.artists)

        token_awarded = winner_type == "active" and title_ok and artist_ok
        if token_awarded:
            active.tokens += 1

        if winner is not None:
            winner.timeline = insert_into_timeline(winner.timeline, card)

        results = []
        if not game.singleplayer:
            results = [
                ChallengeResult(c.name, c.placement_index, lo <= c.placement_index <= hi)
                for c in game.challenges
            ]

        game.last_reveal = RoundReveal(
            song=card,
            correct_min_index=lo,
            correct_max_index=hi,
            active_chosen_index=chosen,
            active_placement_correct=active_correct,
            title_ok=title_ok,
            artist_ok=artist_ok,
            token_awarded=token_awarded,
            winner=winner.name if winner else None,
            winner_type=winner_type,
            challenge_results=results,
        )
        logger.info(
            "[resolve] room=%s card=%s winner=%s type=%s token=%s",
            room.code, card.id, winner.name if winner else None, winner_type, token_awarded,
        )

        game.phase = "WAIT_PLAY"
        game.media_id = None
        self._clear_round(game)
        self._publisher.stop(room)

        self._advance_turn(room)
        self._draw_next(room)
        self._publisher.publish_state(room)
