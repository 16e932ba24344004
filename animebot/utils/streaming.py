from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union
from urllib.parse import quote_plus, urljoin, urlparse

import aiohttp
from bs4 import BeautifulSoup

from .. import config
from ..strings import S
from .results import UNAVAILABLE, _Unavailable

log = logging.getLogger(__name__)

LinkResult = Union[str, _Unavailable]

__all__ = [
    "DEFAULT_SOURCES",
    "LinkResult",
    "ScrapedLinkSource",
    "StreamingLinks",
    "TemplateLinkSource",
    "first_result_href",
    "episode_href",
]


def first_result_href(html: str, selector: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    node = soup.select_one(selector)
    if node is None:
        return None
    href = (node.get("href") or "").strip()
    return href or None


def episode_href(html: str, selector: str, episode: int) -> Optional[str]:
    """Find the link among `selector` matches whose text or title names `episode`."""
    soup = BeautifulSoup(html, "html.parser")
    wanted = re.compile(rf"(?<![\d.]){episode}(?![\d.])")
    for node in soup.select(selector):
        label = " ".join(
            filter(None, [node.get_text(" ", strip=True), node.get("title"), node.get("data-number")])
        )
        if wanted.search(label):
            href = (node.get("href") or "").strip()
            if href:
                return href
    return None


@dataclass(frozen=True)
class TemplateLinkSource:
    """No network call: the URL is built from a template and may or may not resolve."""

    name: str
    template: str

    async def episode_link(self, session: aiohttp.ClientSession, title: str, episode: int) -> str:
        return self.template.format(query=quote_plus(title), episode=episode)


@dataclass(frozen=True)
class ScrapedLinkSource:
    """
    Scrapes a site's search page for the first result, then either builds the
    episode URL from `episode_url` or scans the result page with `episode_selector`.
    """

    name: str
    search_url: str
    result_selector: str
    episode_url: Optional[str] = None
    episode_selector: Optional[str] = None

    async def _get_text(self, session: aiohttp.ClientSession, url: str) -> str:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=config.LINK_DEADLINE_SEC),
            headers={"User-Agent": config.USER_AGENT},
        ) as resp:
            if resp.status != 200:
                raise RuntimeError(S("streaming.error.http", source=self.name, code=resp.status))
            return await resp.text()

    async def episode_link(self, session: aiohttp.ClientSession, title: str, episode: int) -> str:
        search = self.search_url.format(query=quote_plus(title))
        html = await self._get_text(session, search)
        href = first_result_href(html, self.result_selector)
        if not href:
            raise LookupError(S("streaming.error.no_result", source=self.name))

        series_url = urljoin(search, href)
        if self.episode_url:
            parsed = urlparse(series_url)
            slug = parsed.path.rstrip("/").rsplit("/", 1)[-1]
            base = f"{parsed.scheme}://{parsed.netloc}"
            return self.episode_url.format(base=base, slug=slug, series=series_url, episode=episode)

        if self.episode_selector:
            page = await self._get_text(session, series_url)
            ep = episode_href(page, self.episode_selector, episode)
            if ep:
                return urljoin(series_url, ep)
        return series_url


DEFAULT_SOURCES: Sequence[Union[TemplateLinkSource, ScrapedLinkSource]] = (
    TemplateLinkSource("Crunchyroll", "https://www.crunchyroll.com/search?q={query}"),
    ScrapedLinkSource(
        "Gogoanime",
        search_url="https://anitaku.to/search.html?keyword={query}",
        result_selector="ul.items li p.name a",
        episode_url="{base}/{slug}-episode-{episode}",
    ),
    ScrapedLinkSource(
        "AnimeKAI",
        search_url="https://animekai.to/browser?keyword={query}",
        result_selector="div.aitem a.poster",
        episode_selector="div.eplist a",
    ),
)


class StreamingLinks:
    """Resolve per-source watch links; one source failing never affects the others."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        sources: Sequence[Union[TemplateLinkSource, ScrapedLinkSource]] = DEFAULT_SOURCES,
        *,
        deadline: float = config.LINK_DEADLINE_SEC,
    ):
        self.session = session
        self.sources = list(sources)
        self.deadline = deadline

    async def _one(self, source, title: str, episode: int) -> LinkResult:
        try:
            return await asyncio.wait_for(
                source.episode_link(self.session, title, episode), timeout=self.deadline
            )
        except asyncio.TimeoutError:
            log.warning("streaming: %s timed out for %r ep %s", source.name, title, episode)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("streaming: %s failed for %r ep %s: %s", source.name, title, episode, e)
        return UNAVAILABLE

    async def fetch_streaming_links(self, title: str, episode: int) -> Dict[str, LinkResult]:
        results = await asyncio.gather(*(self._one(s, title, episode) for s in self.sources))
        return {s.name: r for s, r in zip(self.sources, results)}
