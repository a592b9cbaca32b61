from __future__ import annotations

import json
import logging
import random
import re
from pathlib import Path
from typing import Any

from .models import Song


logger = logging.getLogger(__name__)

MEDIA_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def is_media_id(value: Any) -> bool:
    return isinstance(value, str) and bool(MEDIA_ID_RE.fullmatch(value))


def normalize_song(raw: dict, id_hint: str) -> Song:
    """Build a validated ``Song`` from a loosely shaped record.

    ``artists`` may be a list or a ``;`` separated string. Raises
    ``ValueError`` when the title or year is unusable.
    """
    title = str(raw.get("title") or "").strip()
    if not title:
        raise ValueError("missing title")

    try:
        year = int(raw.get("year"))
    except (TypeError, ValueError):
        raise ValueError(f"invalid year for {title!r}") from None

    artists_raw = raw.get("artists") or ""
    if isinstance(artists_raw, (list, tuple)):
        artists = [str(a).strip() for a in artists_raw]
    else:
        artists = [a.strip() for a in str(artists_raw).split(";")]
    artists = [a for a in artists if a]

    query = str(raw.get("search_query") or raw.get("youtube_query") or "").strip()
    if not query:
        query = " ".join([title, *artists]).strip()

    media_id = raw.get("media_id") or raw.get("youtubeId") or raw.get("youtube_id")
    media_id = str(media_id) if media_id else None
    if not is_media_id(media_id):
        media_id = None

    return Song(
        id=str(raw.get("id") or id_hint),
        title=title,
        year=year,
        artists=tuple(artists),
        search_query=query,
        media_id=media_id,
    )


def normalize_songs(records: list) -> list[Song]:
    songs: list[Song] = []
    for idx, raw in enumerate(records):
        if not isinstance(raw, dict):
            logger.warning("[songs] skipping record %d: not an object", idx)
            continue
        try:
            songs.append(normalize_song(raw, id_hint=f"s{idx + 1}"))
        except ValueError as exc:
            logger.warning("[songs] skipping record %d: %s", idx, exc)
    return songs


def load_songs(path: str | Path) -> list[Song]:
    p = Path(path)
    try:
        records = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("[songs] no song file at %s", p)
        return []
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("[songs] could not read %s: %s", p, exc)
        return []

    if not isinstance(records, list):
        logger.error("[songs] %s does not contain a list", p)
        return []

    songs = normalize_songs(records)
    logger.info("[songs] loaded %d songs from %s", len(songs), p)
    return songs


def shuffled(songs: list[Song], rng: random.Random | None = None) -> list[Song]:
    deck = list(songs)
    (rng or random).shuffle(deck)
    return deck


def draw(deck: list[Song]) -> Song | None:
    if not deck:
        return None
    return deck.pop(0)
