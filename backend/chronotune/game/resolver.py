from __future__ import annotations

import logging
import re
from collections import OrderedDict
from threading import Lock

import requests


logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.youtube.com/results"

_WATCH_RE = re.compile(r"watch\?v=([A-Za-z0-9_-]{11})")
_VIDEO_ID_RE = re.compile(r'"videoId":"([A-Za-z0-9_-]{11})"')

_EXCLUDE = " -live -cover -remix -reaction -sped -slowed -instrumental -karaoke -8d -nightcore -tiktok"

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120 Safari/537.36",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def extract_media_ids(html: str | None) -> list[str]:
    if not html:
        return []

    found = _WATCH_RE.findall(html) + _VIDEO_ID_RE.findall(html)
    return list(dict.fromkeys(found))


def topic_first_query(original: str) -> str:
    q = (original or "").strip()
    if not q:
        return ""
    add = "" if "topic" in q.lower() else " topic"
    return f"{q}{add}{_EXCLUDE}".strip()


def clean_audio_query(original: str) -> str:
    q = (original or "").strip()
    if not q:
        return ""

    lower = q.lower()
    hinted = any(h in lower for h in ("official audio", " lyrics", "lyric", " topic", " audio"))
    prefer = "" if hinted else ' "official audio" OR lyrics OR "lyric video" OR "audio" OR topic'
    extra = "" if "hq" in lower else " hq"
    return f"{q}{prefer}{extra}{_EXCLUDE}".strip()


class IdentifierResolver:
    """Turns a free-text search query into a playable media id.

    Lookups are cached by the original query (FIFO, bounded). Transport
    errors are logged and reported as ``None`` without being cached, so a
    later attempt can still succeed.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 8.0,
        cache_size: int = 3000,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout
        self._cache_size = cache_size
        self._cache: OrderedDict[str, str | None] = OrderedDict()
        self._cache_lock = Lock()

    def _remember(self, query: str, media_id: str | None) -> None:
        with self._cache_lock:
            self._cache[query] = media_id
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)

    def _first_id(self, query: str) -> str | None:
        if not query:
            return None
        r = self._session.get(
            SEARCH_URL,
            params={"search_query": query},
            headers=_HEADERS,
            timeout=self._timeout,
        )
        r.raise_for_status()
        ids = extract_media_ids(r.text)
        return ids[0] if ids else None

    def resolve(self, query: str | None) -> str | None:
        original = (query or "").strip()
        if not original:
            return None

        with self._cache_lock:
            if original in self._cache:
                return self._cache[original]

        try:
            media_id = self._first_id(topic_first_query(original))

            clean = clean_audio_query(original)
            if not media_id and clean and clean != original:
                media_id = self._first_id(clean)

            if not media_id:
                media_id = self._first_id(original)
        except requests.RequestException as exc:
            logger.warning("[resolve] lookup failed query=%r: %s", original, exc)
            return None

        self._remember(original, media_id)
        logger.info("[resolve] query=%r media_id=%s", original, media_id)
        return media_id
