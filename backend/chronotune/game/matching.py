from __future__ import annotations

import re
from typing import Iterable


def normalize_text(text: str | None) -> str:
    t = str(text or "").lower()
    t = t.replace("&", "and")
    t = re.sub(r"[^a-z0-9]+", " ", t)
    return re.sub(r"\s+", " ", t).strip()


def is_close_enough(guess: str | None, actual: str | None) -> bool:
    g = normalize_text(guess)
    a = normalize_text(actual)
    if not g or not a:
        return False
    if g == a:
        return True

    # Partial answers count once they are long enough to be meaningful.
    if len(g) >= 4 and (g in a or a in g):
        return True

    return False


def artist_guess_matches(guess: str | None, artists: Iterable[str]) -> bool:
    if not normalize_text(guess):
        return False
    return any(is_close_enough(guess, a) for a in artists or ())
