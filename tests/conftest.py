import pytest
from typing import Any, Dict, List, Optional

from animebot.db import ensure_db
from animebot.models import subscriptions as subs
from animebot.models.common import normalize_title
from animebot.utils.notify import DeliveryResult
from animebot.utils.reconcile import Reconciler
from animebot.utils.results import AnimeState, MangaState, NotFound, Ok, TransientError

# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    """Every test gets its own SQLite file."""
    monkeypatch.setenv("BOT_DB_PATH", str(tmp_path / "test.sqlite3"))
    monkeypatch.delenv("DB_REQUIRE_PERSISTENCE", raising=False)
    ensure_db()
    return tmp_path / "test.sqlite3"


@pytest.fixture
def make_subscriber():
    """Create a subscriber with watches and an optional channel in one call."""

    def _make(
        user_id: str,
        guild_id: str = "g1",
        *,
        anime: Optional[Dict[str, int]] = None,
        manga: Optional[Dict[str, float]] = None,
        channel: Optional[str] = "c1",
    ) -> subs.SubscriberRecord:
        rec = subs.find_or_create(user_id, guild_id)
        if channel is not None:
            subs.set_channel(rec, "notification", channel)
        for title, ep in (anime or {}).items():
            subs.add_watch(rec, "anime", title, ep)
        for title, ch in (manga or {}).items():
            subs.add_watch(rec, "manga", title, ch)
        return rec

    return _make


# =============================================================================
# Fakes - content sources and delivery
# =============================================================================


class FakeAnimeSource:
    def __init__(self):
        self.results: Dict[str, Any] = {}
        self.calls: List[str] = []

    def set(self, title: str, latest: int, display: Optional[str] = None):
        self.results[normalize_title(title)] = Ok(
            AnimeState(display or title, latest, f"https://anilist.co/anime/{normalize_title(title)}")
        )

    def fail(self, title: str, result=None):
        self.results[normalize_title(title)] = result or TransientError("boom")

    async def fetch_anime_state(self, title: str):
        self.calls.append(title)
        value = self.results.get(normalize_title(title), NotFound(title))
        if isinstance(value, BaseException):
            raise value
        return value


class FakeMangaSource:
    def __init__(self):
        self.results: Dict[str, Any] = {}
        self.calls: List[str] = []

    def set(self, title: str, latest: float, display: Optional[str] = None):
        self.results[normalize_title(title)] = Ok(
            MangaState(display or title, latest, "https://mangadex.org/chapter/abc")
        )

    def fail(self, title: str, result=None):
        self.results[normalize_title(title)] = result or TransientError("boom")

    async def fetch_manga_state(self, title: str):
        self.calls.append(title)
        value = self.results.get(normalize_title(title), NotFound(title))
        if isinstance(value, BaseException):
            raise value
        return value


class FakeLinks:
    def __init__(self, links: Optional[Dict[str, Any]] = None):
        self.links = links if links is not None else {"Crunchyroll": "https://cr.example/x"}
        self.calls: List[tuple] = []

    async def fetch_streaming_links(self, title: str, episode: int):
        self.calls.append((title, episode))
        return dict(self.links)


class FakeDispatcher:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail_for: set = set()
        self.raise_for: set = set()

    async def notify(self, channel_id, subscriber_id, kind, title, body):
        if subscriber_id in self.raise_for:
            raise RuntimeError("dispatcher exploded")
        if not channel_id:
            return DeliveryResult("skipped", "no channel configured")
        if subscriber_id in self.fail_for:
            return DeliveryResult("failed", "Missing Access")
        self.sent.append(
            {"channel_id": channel_id, "user_id": subscriber_id, "kind": kind, "title": title, "body": body}
        )
        return DeliveryResult("delivered")


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def anime_source():
    return FakeAnimeSource()


@pytest.fixture
def manga_source():
    return FakeMangaSource()


@pytest.fixture
def links():
    return FakeLinks()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def reconciler(anime_source, manga_source, links, dispatcher):
    return Reconciler(anime_source, manga_source, links, dispatcher, sleep=_no_sleep)


# =============================================================================
# Fake aiohttp session
# =============================================================================


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, text: str = ""):
        self.status = status
        self._payload = payload if payload is not None else {}
        self._text = text

    async def json(self):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Hands out queued responses in order; an exception in the queue is raised instead."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls: List[tuple] = []

    def _next(self, method: str, url: str, kwargs: dict):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)
