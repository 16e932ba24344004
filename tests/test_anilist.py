import asyncio

import aiohttp
import pytest

from animebot.utils.anilist import AniListClient, anime_state_from_media
from animebot.utils.results import NotFound, Ok, TransientError
from conftest import FakeResponse, FakeSession

MEDIA = {
    "title": {"romaji": "Sousou no Frieren", "english": "Frieren: Beyond Journey's End"},
    "episodes": 28,
    "siteUrl": "https://anilist.co/anime/154587",
    "nextAiringEpisode": {"episode": 11},
}


def _ok(media=MEDIA):
    return FakeResponse(200, {"data": {"Media": media}})


class TestAnimeStateFromMedia:
    def test_next_airing_minus_one(self):
        state = anime_state_from_media(MEDIA)
        assert state.latest_episode == 10
        assert state.display_title == "Frieren: Beyond Journey's End"
        assert state.reference_url == "https://anilist.co/anime/154587"

    def test_falls_back_to_total_episodes(self):
        state = anime_state_from_media({**MEDIA, "nextAiringEpisode": None})
        assert state.latest_episode == 28

    def test_nothing_known_is_zero(self):
        state = anime_state_from_media({"title": {"romaji": "Mystery"}, "episodes": None})
        assert state.latest_episode == 0
        assert state.display_title == "Mystery"

    def test_romaji_when_no_english(self):
        media = {**MEDIA, "title": {"romaji": "Sousou no Frieren", "english": None}}
        assert anime_state_from_media(media).display_title == "Sousou no Frieren"


class TestFetchAnimeState:
    @pytest.fixture
    def sleeps(self):
        return []

    def _client(self, session, sleeps):
        async def fake_sleep(seconds):
            sleeps.append(seconds)

        return AniListClient(session, backoff=2, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_ok(self, sleeps):
        session = FakeSession([_ok()])
        result = await self._client(session, sleeps).fetch_anime_state("frieren")

        assert isinstance(result, Ok)
        assert result.value.latest_episode == 10
        method, _url, kwargs = session.calls[0]
        assert method == "POST"
        assert kwargs["json"]["variables"] == {"search": "frieren"}

    @pytest.mark.asyncio
    async def test_rate_limit_retries_once_after_backoff(self, sleeps):
        session = FakeSession([FakeResponse(429), _ok()])
        result = await self._client(session, sleeps).fetch_anime_state("frieren")

        assert isinstance(result, Ok)
        assert sleeps == [2]
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_second_rate_limit_is_transient(self, sleeps):
        session = FakeSession([FakeResponse(429), FakeResponse(429)])
        result = await self._client(session, sleeps).fetch_anime_state("frieren")

        assert isinstance(result, TransientError)
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_404_and_null_media_are_not_found(self, sleeps):
        client = self._client(FakeSession([FakeResponse(404), _ok(None)]), sleeps)
        assert isinstance(await client.fetch_anime_state("nope"), NotFound)
        assert isinstance(await client.fetch_anime_state("nope"), NotFound)

    @pytest.mark.asyncio
    async def test_server_error_and_network_errors_are_transient(self, sleeps):
        client = self._client(
            FakeSession(
                [
                    FakeResponse(500),
                    aiohttp.ClientConnectionError("reset"),
                    asyncio.TimeoutError(),
                    FakeResponse(200, {"errors": [{"message": "bad"}]}),
                ]
            ),
            sleeps,
        )
        for _ in range(4):
            assert isinstance(await client.fetch_anime_state("x"), TransientError)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_unexpected_body_shapes_are_transient(self, sleeps):
        client = self._client(
            FakeSession(
                [
                    FakeResponse(200, ["unexpected"]),
                    FakeResponse(200, {"data": ["not", "a", "dict"]}),
                    FakeResponse(200, {"data": {"Media": "frieren"}}),
                    FakeResponse(200, {"errors": "quota exceeded"}),
                ]
            ),
            sleeps,
        )
        for _ in range(4):
            result = await client.fetch_anime_state("x")
            assert isinstance(result, TransientError)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_malformed_title_block_is_transient(self, sleeps):
        client = self._client(FakeSession([_ok({**MEDIA, "title": "just a string"})]), sleeps)
        assert isinstance(await client.fetch_anime_state("x"), TransientError)
