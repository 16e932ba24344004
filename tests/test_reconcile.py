"""
Tests for the reconciliation tick.

Covers:
- notify + advance only on strictly newer upstream progress
- one upstream fetch per distinct title
- failure isolation per title and per subscriber
- idempotence and the monotonic ratchet
- run-lock against overlapping ticks
"""

import asyncio

import pytest

from animebot.models import subscriptions as subs
from animebot.utils.reconcile import Reconciler
from animebot.utils.results import NotFound, TransientError, UNAVAILABLE


def _progress(user_id, kind, title, guild_id="g1"):
    rec = subs.get(user_id, guild_id)
    return rec.find_watch(kind, title).progress


class TestAnimeScenarios:
    @pytest.mark.asyncio
    async def test_new_episode_notifies_once_and_advances(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"X": 5})
        anime_source.set("X", 6)

        report = await reconciler.run_tick()

        assert len(dispatcher.sent) == 1
        sent = dispatcher.sent[0]
        assert sent["user_id"] == "u1"
        assert sent["kind"] == "anime"
        assert "Episode 6" in sent["body"]
        assert _progress("u1", "anime", "X") == 6
        assert report.get("anime").advanced == 1

    @pytest.mark.asyncio
    async def test_equal_or_lower_upstream_never_notifies(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"Same": 6, "Lower": 6})
        anime_source.set("Same", 6)
        anime_source.set("Lower", 4)

        await reconciler.run_tick()

        assert dispatcher.sent == []
        assert _progress("u1", "anime", "Same") == 6
        assert _progress("u1", "anime", "Lower") == 6

    @pytest.mark.asyncio
    async def test_streaming_links_included_with_unavailable_marked(
        self, make_subscriber, anime_source, manga_source, dispatcher
    ):
        from conftest import FakeLinks, _no_sleep

        links = FakeLinks({"Crunchyroll": "https://cr.example/x", "Gogoanime": UNAVAILABLE})
        rec = Reconciler(anime_source, manga_source, links, dispatcher, sleep=_no_sleep)
        make_subscriber("u1", anime={"X": 1})
        anime_source.set("X", 2)

        await rec.run_tick()

        body = dispatcher.sent[0]["body"]
        assert "Crunchyroll: https://cr.example/x" in body
        assert "Gogoanime: unavailable" in body
        assert links.calls == [("X", 2)]

    @pytest.mark.asyncio
    async def test_streaming_links_crash_still_notifies(self, make_subscriber, anime_source, manga_source, dispatcher):
        from conftest import _no_sleep

        class ExplodingLinks:
            async def fetch_streaming_links(self, title, episode):
                raise RuntimeError("scraper broke")

        rec = Reconciler(anime_source, manga_source, ExplodingLinks(), dispatcher, sleep=_no_sleep)
        make_subscriber("u1", anime={"X": 1})
        anime_source.set("X", 2)

        await rec.run_tick()

        assert len(dispatcher.sent) == 1
        assert _progress("u1", "anime", "X") == 2


class TestMangaScenarios:
    @pytest.mark.asyncio
    async def test_two_subscribers_one_fetch_one_notification(
        self, reconciler, make_subscriber, manga_source, dispatcher
    ):
        make_subscriber("u1", manga={"Y": 3})
        make_subscriber("u2", manga={"y ": 5})
        manga_source.set("Y", 5)

        report = await reconciler.run_tick()

        assert manga_source.calls == ["Y"]
        assert [m["user_id"] for m in dispatcher.sent] == ["u1"]
        assert "Chapter 5" in dispatcher.sent[0]["body"]
        assert _progress("u1", "manga", "Y") == 5
        assert _progress("u2", "manga", "Y") == 5
        assert report.get("manga").fetches == 1

    @pytest.mark.asyncio
    async def test_fractional_chapter_advances(self, reconciler, make_subscriber, manga_source, dispatcher):
        make_subscriber("u1", manga={"Frac": 10})
        manga_source.set("Frac", 10.5)

        await reconciler.run_tick()

        assert _progress("u1", "manga", "Frac") == 10.5
        assert "Chapter 10.5" in dispatcher.sent[0]["body"]


class TestGroupingAndIsolation:
    @pytest.mark.asyncio
    async def test_fetch_count_equals_distinct_titles(self, reconciler, make_subscriber, anime_source):
        make_subscriber("u1", anime={"A": 1, "B": 1})
        make_subscriber("u2", anime={"a": 1})
        make_subscriber("u3", anime={"  A  ": 1, "C": 1})
        for t in ("A", "B", "C"):
            anime_source.set(t, 1)

        report = await reconciler.run_tick()

        assert sorted(t.lower() for t in anime_source.calls) == ["a", "b", "c"]
        assert report.get("anime").fetches == 3

    @pytest.mark.asyncio
    async def test_failed_title_does_not_block_other_titles(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"A": 1, "B": 1})
        anime_source.fail("A")
        anime_source.set("B", 2)

        report = await reconciler.run_tick()

        assert [m["title"] for m in dispatcher.sent] == ["B"]
        assert _progress("u1", "anime", "A") == 1
        assert _progress("u1", "anime", "B") == 2
        assert report.get("anime").skipped_titles == 1

    @pytest.mark.asyncio
    async def test_source_exception_is_treated_as_transient(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"A": 1, "B": 1})
        anime_source.results["a"] = ValueError("parser blew up")
        anime_source.set("B", 3)

        await reconciler.run_tick()

        assert [m["title"] for m in dispatcher.sent] == ["B"]

    @pytest.mark.asyncio
    async def test_not_found_skips_silently(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"Ghost": 4})
        anime_source.fail("Ghost", NotFound("Ghost"))

        await reconciler.run_tick()

        assert dispatcher.sent == []
        assert _progress("u1", "anime", "Ghost") == 4

    @pytest.mark.asyncio
    async def test_hanging_source_times_out_for_that_title_only(self, make_subscriber, manga_source, links, dispatcher):
        from conftest import FakeAnimeSource, _no_sleep

        class SlowAnime(FakeAnimeSource):
            async def fetch_anime_state(self, title):
                if title == "Slow":
                    await asyncio.sleep(5)
                return await super().fetch_anime_state(title)

        source = SlowAnime()
        source.set("Fast", 2)
        rec = Reconciler(source, manga_source, links, dispatcher, sleep=_no_sleep, deadline=0.05)
        make_subscriber("u1", anime={"Slow": 1, "Fast": 1})

        report = await rec.run_tick()

        assert [m["title"] for m in dispatcher.sent] == ["Fast"]
        assert report.get("anime").skipped_titles == 1

    @pytest.mark.asyncio
    async def test_failed_delivery_still_advances_and_siblings_continue(
        self, reconciler, make_subscriber, anime_source, dispatcher
    ):
        make_subscriber("u1", anime={"X": 1})
        make_subscriber("u2", anime={"X": 1})
        make_subscriber("u3", anime={"X": 1})
        dispatcher.fail_for.add("u1")
        dispatcher.raise_for.add("u2")
        anime_source.set("X", 2)

        report = await reconciler.run_tick()

        assert [m["user_id"] for m in dispatcher.sent] == ["u3"]
        for uid in ("u1", "u2", "u3"):
            assert _progress(uid, "anime", "X") == 2
        assert report.get("anime").undelivered == 2

    @pytest.mark.asyncio
    async def test_no_channel_skips_notification_but_advances(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", guild_id="lonely", anime={"X": 1}, channel=None)
        anime_source.set("X", 2)

        await reconciler.run_tick()

        assert dispatcher.sent == []
        assert _progress("u1", "anime", "X", guild_id="lonely") == 2

    @pytest.mark.asyncio
    async def test_command_channel_used_when_no_notification_channel(
        self, reconciler, make_subscriber, anime_source, dispatcher
    ):
        rec = make_subscriber("u1", guild_id="g9", anime={"X": 1}, channel=None)
        subs.set_channel(rec, "command", "cmd-chan")
        anime_source.set("X", 2)

        await reconciler.run_tick()

        assert dispatcher.sent[0]["channel_id"] == "cmd-chan"


class TestTickProperties:
    @pytest.mark.asyncio
    async def test_second_tick_without_upstream_change_is_a_noop(
        self, reconciler, make_subscriber, anime_source, manga_source, dispatcher
    ):
        make_subscriber("u1", anime={"X": 1}, manga={"Y": 1})
        anime_source.set("X", 2)
        manga_source.set("Y", 2)

        await reconciler.run_tick()
        first = [(r.user_id, [(w.title, w.progress) for w in r.anime + r.manga]) for r in subs.list_all()]
        await reconciler.run_tick()
        second = [(r.user_id, [(w.title, w.progress) for w in r.anime + r.manga]) for r in subs.list_all()]

        assert len(dispatcher.sent) == 2
        assert first == second

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, reconciler, make_subscriber, anime_source, dispatcher):
        make_subscriber("u1", anime={"X": 1})
        anime_source.set("X", 8)
        await reconciler.run_tick()
        anime_source.set("X", 3)
        await reconciler.run_tick()

        assert _progress("u1", "anime", "X") == 8
        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, make_subscriber, manga_source, links, dispatcher):
        from conftest import FakeAnimeSource

        gate = asyncio.Event()

        class GatedAnime(FakeAnimeSource):
            async def fetch_anime_state(self, title):
                await gate.wait()
                return await super().fetch_anime_state(title)

        async def no_sleep(_):
            return None

        source = GatedAnime()
        source.set("X", 2)
        rec = Reconciler(source, manga_source, links, dispatcher, sleep=no_sleep)
        make_subscriber("u1", anime={"X": 1})

        first = asyncio.create_task(rec.run_tick())
        await asyncio.sleep(0)
        assert rec.running
        assert await rec.run_tick() is None

        gate.set()
        report = await first
        assert report is not None
        assert len(dispatcher.sent) == 1
        assert not rec.running

    @pytest.mark.asyncio
    async def test_jitter_sleep_before_every_fetch(self, make_subscriber, anime_source, manga_source, links, dispatcher):
        pauses = []

        async def record_sleep(seconds):
            pauses.append(seconds)

        rec = Reconciler(
            anime_source,
            manga_source,
            links,
            dispatcher,
            sleep=record_sleep,
            rand=lambda lo, hi: (lo + hi) / 2,
        )
        make_subscriber("u1", anime={"A": 0, "B": 0}, manga={"M": 0})

        await rec.run_tick()

        assert pauses == [0.75, 0.75, pytest.approx(0.45)]

    @pytest.mark.asyncio
    async def test_watch_added_during_tick_survives(self, make_subscriber, manga_source, links, dispatcher):
        from conftest import FakeAnimeSource, _no_sleep

        class MeddlingAnime(FakeAnimeSource):
            async def fetch_anime_state(self, title):
                # a command handler adds a watch while the tick is mid-flight
                rec = subs.find_or_create("u1", "g1")
                subs.add_watch(rec, "anime", "Late Add", 0)
                return await super().fetch_anime_state(title)

        source = MeddlingAnime()
        source.set("X", 2)
        rec = Reconciler(source, manga_source, links, dispatcher, sleep=_no_sleep)
        make_subscriber("u1", anime={"X": 1})

        await rec.run_tick()

        stored = subs.get("u1", "g1")
        assert stored.find_watch("anime", "late add") is not None
        assert stored.find_watch("anime", "X").progress == 2
