from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

import aiohttp

from .. import config
from ..strings import S
from .results import FetchResult, MangaState, NotFound, Ok, TransientError

log = logging.getLogger(__name__)

SITE_BASE = "https://mangadex.org"
CHAPTER_WINDOW = 20
PREFERRED_LANGUAGE = "en"

__all__ = [
    "MangaDexClient",
    "chapter_number",
    "pick_manga",
    "pick_latest_chapter",
    "manga_display_title",
]


def chapter_number(chapter: dict) -> Optional[float]:
    raw = (chapter.get("attributes") or {}).get("chapter")
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _english_titles(manga: dict) -> List[str]:
    attrs = manga.get("attributes") or {}
    out: List[str] = []
    main = (attrs.get("title") or {}).get("en")
    if main:
        out.append(main)
    for alt in attrs.get("altTitles") or []:
        if isinstance(alt, dict) and alt.get("en"):
            out.append(alt["en"])
    return out


def manga_display_title(manga: dict, fallback: str = "") -> str:
    titles = (manga.get("attributes") or {}).get("title") or {}
    if titles.get("en"):
        return titles["en"]
    for value in titles.values():
        if value:
            return value
    return fallback or "Unknown"


def pick_manga(results: List[dict], query: str) -> Optional[dict]:
    """Exact (case-insensitive) English title match wins; otherwise the first hit."""
    if not results:
        return None
    q = query.strip().lower()
    for manga in results:
        if any(t.strip().lower() == q for t in _english_titles(manga)):
            return manga
    return results[0]


def pick_latest_chapter(chapters: List[dict]) -> Optional[Tuple[float, dict]]:
    """
    Highest numbered chapter among the recent window; an English release of
    that number is preferred over any other language.
    """
    numbered = []
    for ch in chapters:
        num = chapter_number(ch)
        if num is not None:
            numbered.append((num, ch))
    if not numbered:
        return None

    top = max(num for num, _ in numbered)
    same = [ch for num, ch in numbered if num == top]
    for ch in same:
        if (ch.get("attributes") or {}).get("translatedLanguage") == PREFERRED_LANGUAGE:
            return top, ch
    return top, same[0]


def _data_list(body) -> List[dict]:
    """The `data` array of a collection response, or RuntimeError if the body has another shape."""
    if not isinstance(body, dict):
        raise RuntimeError(S("mangadex.error.payload", kind=type(body).__name__))
    items = body.get("data") or []
    if not isinstance(items, list):
        raise RuntimeError(S("mangadex.error.payload", kind=type(items).__name__))
    return [item for item in items if isinstance(item, dict)]


class MangaDexClient:
    def __init__(self, session: aiohttp.ClientSession, *, api_url: str = config.MANGADEX_API):
        self.session = session
        self.api_url = api_url.rstrip("/")
        self._headers = {
            "Accept": "application/json",
            "User-Agent": config.USER_AGENT,
        }

    async def search_manga(self, title: str, limit: int = 10) -> List[dict]:
        async with self.session.get(
            f"{self.api_url}/manga",
            params={"title": title, "limit": str(limit)},
            timeout=aiohttp.ClientTimeout(total=20),
            headers=self._headers,
        ) as resp:
            if resp.status != 200:
                raise RuntimeError(S("mangadex.error.search_http", code=resp.status))
            data = await resp.json()
        return _data_list(data)

    async def recent_chapters(self, manga_id: str, limit: int = CHAPTER_WINDOW) -> List[dict]:
        params = [
            ("manga", manga_id),
            ("order[chapter]", "desc"),
            ("limit", str(limit)),
        ]
        async with self.session.get(
            f"{self.api_url}/chapter",
            params=params,
            timeout=aiohttp.ClientTimeout(total=20),
            headers=self._headers,
        ) as resp:
            if resp.status != 200:
                raise RuntimeError(
                    S("mangadex.error.chapters_http", code=resp.status, manga_id=manga_id)
                )
            data = await resp.json()
        return _data_list(data)

    async def fetch_manga_state(self, title: str) -> FetchResult[MangaState]:
        try:
            manga = pick_manga(await self.search_manga(title), title)
            if manga is None:
                return NotFound(title)
            manga_id = str(manga["id"])
            chapters = await self.recent_chapters(manga_id)
            display = manga_display_title(manga, fallback=title)
            picked = pick_latest_chapter(chapters)
        except (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            RuntimeError,
            ValueError,
            KeyError,
            AttributeError,
            TypeError,
        ) as e:
            log.warning("mangadex: fetch failed for %r: %s", title, e)
            return TransientError(str(e) or type(e).__name__)

        if picked is None:
            return Ok(MangaState(display, 0.0, f"{SITE_BASE}/title/{manga_id}"))

        number, chapter = picked
        language = (chapter.get("attributes") or {}).get("translatedLanguage") or "unknown"
        url = f"{SITE_BASE}/chapter/{chapter.get('id')}"
        if language != PREFERRED_LANGUAGE:
            url = f"{url} (language: {language})"
        return Ok(MangaState(display, number, url, language=language))
