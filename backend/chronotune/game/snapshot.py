from __future__ import annotations

from .models import Room


def room_public_state(room: Room) -> dict:
    with room.lock:
        game = room.game
        active = room.active_player
        host = room.host

        # The current card stays hidden until the reveal.
        game_view = {
            "started": game.started,
            "over": game.over,
            "phase": game.phase,
            "activePlayer": active.name if active else None,
            "hasCurrentCard": game.current_card is not None,
            "lastReveal": game.last_reveal.to_public() if game.last_reveal else None,
            "cardNonce": game.card_nonce,
            "challengeEndsAt": game.challenge_ends_at_ms,
            "activeGuessIndex": game.active_guess.placement_index if game.active_guess else None,
            "challenges": [
                {"name": c.name, "placementIndex": c.placement_index} for c in game.challenges
            ],
            "singleplayer": game.singleplayer,
            "deckRemaining": len(game.deck),
        }

        return {
            "roomCode": room.code,
            "host": host.name if host else None,
            "game": game_view,
            "players": [
                {
                    "name": p.name,
                    "tokens": p.tokens,
                    "timeline": [s.to_public() for s in p.timeline],
                }
                for p in room.players
            ],
        }
