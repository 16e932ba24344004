from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aiohttp

from .. import config
from ..strings import S
from .results import AnimeState, FetchResult, NotFound, Ok, TransientError

log = logging.getLogger(__name__)

MEDIA_QUERY = """
query ($search: String) {
  Media(search: $search, type: ANIME) {
    title {
      romaji
      english
    }
    episodes
    siteUrl
    nextAiringEpisode {
      episode
    }
  }
}
"""

__all__ = ["AniListClient", "RateLimited", "MEDIA_QUERY", "anime_state_from_media"]


class RateLimited(RuntimeError):
    """AniList answered 429."""


def anime_state_from_media(media: dict, fallback_title: str = "") -> AnimeState:
    """
    Latest aired episode: one before the next airing episode if AniList knows it,
    else the total episode count, else 0.
    """
    titles = media.get("title") or {}
    display = titles.get("english") or titles.get("romaji") or fallback_title or "Unknown"

    next_ep = (media.get("nextAiringEpisode") or {}).get("episode")
    if next_ep:
        latest = int(next_ep) - 1
    else:
        latest = int(media.get("episodes") or 0)

    return AnimeState(
        display_title=display,
        latest_episode=max(latest, 0),
        reference_url=media.get("siteUrl") or "",
    )


class AniListClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        api_url: str = config.ANILIST_API,
        backoff: float = config.RATE_LIMIT_BACKOFF_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.api_url = api_url
        self.backoff = backoff
        self._sleep = sleep
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": config.USER_AGENT,
        }

    async def _post_query(self, title: str) -> Optional[dict]:
        payload = {"query": MEDIA_QUERY, "variables": {"search": title}}
        async with self.session.post(
            self.api_url,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=20),
            headers=self._headers,
        ) as resp:
            if resp.status == 429:
                raise RateLimited(S("anilist.error.http", code=resp.status))
            if resp.status == 404:
                # AniList signals "no match" as a 404 with an errors array
                return None
            if resp.status != 200:
                raise RuntimeError(S("anilist.error.http", code=resp.status))
            data = await resp.json()

        if not isinstance(data, dict):
            raise RuntimeError(S("anilist.error.payload", kind=type(data).__name__))
        errors = data.get("errors") or []
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            message = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
            raise RuntimeError(S("anilist.error.graphql", message=message))
        section = data.get("data") or {}
        if not isinstance(section, dict):
            raise RuntimeError(S("anilist.error.payload", kind=type(section).__name__))
        media = section.get("Media")
        if media is not None and not isinstance(media, dict):
            raise RuntimeError(S("anilist.error.payload", kind=type(media).__name__))
        return media

    async def search_media(self, title: str) -> Optional[dict]:
        """Run the media query, retrying exactly once after a 429."""
        try:
            return await self._post_query(title)
        except RateLimited:
            log.warning("anilist: rate limited on %r; retrying in %.1fs", title, self.backoff)
            await self._sleep(self.backoff)
        try:
            return await self._post_query(title)
        except RateLimited:
            raise RuntimeError(S("anilist.error.rate_limited")) from None

    async def fetch_anime_state(self, title: str) -> FetchResult[AnimeState]:
        try:
            media = await self.search_media(title)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError, TypeError) as e:
            log.warning("anilist: fetch failed for %r: %s", title, e)
            return TransientError(str(e) or type(e).__name__)

        if not media:
            return NotFound(title)
        try:
            return Ok(anime_state_from_media(media, fallback_title=title))
        except (AttributeError, TypeError, ValueError) as e:
            log.warning("anilist: malformed media for %r: %s", title, e)
            return TransientError(f"malformed response: {e}")
