from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .. import config
from ..models import subscriptions as subscription_store
from ..models.common import format_progress
from ..ui.notifications import anime_body, manga_body
from .grouping import GroupEntry, TitleGroup, group
from .results import FetchResult, NotFound, Ok, TransientError

log = logging.getLogger(__name__)

__all__ = ["PassReport", "Reconciler", "TickReport"]


@dataclass
class PassReport:
    kind: str
    titles: int = 0
    fetches: int = 0
    skipped_titles: int = 0
    advanced: int = 0
    notified: int = 0
    undelivered: int = 0
    errors: int = 0


@dataclass
class TickReport:
    passes: List[PassReport] = field(default_factory=list)

    @property
    def fetches(self) -> int:
        return sum(p.fetches for p in self.passes)

    @property
    def notified(self) -> int:
        return sum(p.notified for p in self.passes)

    def get(self, kind: str) -> Optional[PassReport]:
        for p in self.passes:
            if p.kind == kind:
                return p
        return None


class Reconciler:
    """
    One tick = an anime pass then a manga pass. Each pass snapshots the store,
    groups watches by normalized title, fetches each title once (sequentially,
    with a jittered pause before every fetch), then walks the group's entries:
    strictly newer upstream progress notifies the subscriber and ratchets the
    stored value forward, whether or not the message got through.
    """

    def __init__(
        self,
        anime_source,
        manga_source,
        links,
        dispatcher,
        *,
        store=subscription_store,
        anime_jitter: Tuple[float, float] = config.ANIME_JITTER,
        manga_jitter: Tuple[float, float] = config.MANGA_JITTER,
        deadline: float = config.FETCH_DEADLINE_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[float, float], float] = random.uniform,
    ):
        self.anime_source = anime_source
        self.manga_source = manga_source
        self.links = links
        self.dispatcher = dispatcher
        self.store = store
        self.jitter: Dict[str, Tuple[float, float]] = {"anime": anime_jitter, "manga": manga_jitter}
        self.deadline = deadline
        self._sleep = sleep
        self._rand = rand
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_tick(self) -> Optional[TickReport]:
        """Run one full tick, or return None if the previous one is still going."""
        if self._lock.locked():
            log.warning("reconcile: previous tick still running; skipping this one")
            return None

        async with self._lock:
            report = TickReport()
            for kind in subscription_store.WATCH_KINDS:
                try:
                    report.passes.append(await self._run_pass(kind))
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception("reconcile: %s pass aborted", kind)
                    report.passes.append(PassReport(kind=kind, errors=1))
            return report

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------
    async def _run_pass(self, kind: str) -> PassReport:
        records = self.store.list_all()
        index = group(records, kind)
        report = PassReport(kind=kind, titles=len(index))
        lo, hi = self.jitter[kind]

        for tg in index:
            await self._sleep(self._rand(lo, hi))
            result = await self._fetch(kind, tg.title)
            report.fetches += 1

            if isinstance(result, NotFound):
                log.info("reconcile: %s %r not found upstream; skipping", kind, tg.title)
                report.skipped_titles += 1
                continue
            if not isinstance(result, Ok):
                log.warning("reconcile: %s %r unavailable this tick: %s", kind, tg.title, result.reason)
                report.skipped_titles += 1
                continue

            await self._apply(kind, tg, result.value, report)

        log.info(
            "reconcile: %s pass done titles=%d fetches=%d skipped=%d advanced=%d notified=%d",
            kind,
            report.titles,
            report.fetches,
            report.skipped_titles,
            report.advanced,
            report.notified,
        )
        return report

    async def _fetch(self, kind: str, title: str) -> FetchResult:
        if kind == "anime":
            call = self.anime_source.fetch_anime_state(title)
        else:
            call = self.manga_source.fetch_manga_state(title)
        try:
            result = await asyncio.wait_for(call, timeout=self.deadline)
        except asyncio.TimeoutError:
            return TransientError(f"no answer within {self.deadline:g}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("reconcile: %s source raised for %r", kind, title)
            return TransientError(str(e) or type(e).__name__)
        if not isinstance(result, (Ok, NotFound, TransientError)):
            return TransientError(f"unexpected result {type(result).__name__}")
        return result

    # ------------------------------------------------------------------
    # Per-title / per-entry
    # ------------------------------------------------------------------
    async def _apply(self, kind: str, tg: TitleGroup, state, report: PassReport) -> None:
        body: Optional[str] = None
        for entry in tg.entries:
            try:
                current = entry.watch.progress or 0
                latest = state.latest_progress
                if not latest > current:
                    continue
                if body is None:
                    body = await self._compose_body(kind, state)
                await self._advance(kind, entry, state, body, report)
            except asyncio.CancelledError:
                raise
            except Exception:
                report.errors += 1
                log.exception(
                    "reconcile: %s %r failed for user %s in guild %s",
                    kind,
                    tg.title,
                    entry.record.user_id,
                    entry.record.guild_id,
                )

    async def _compose_body(self, kind: str, state) -> str:
        if kind == "manga":
            return manga_body(state)
        try:
            links = await self.links.fetch_streaming_links(state.display_title, state.latest_episode)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("reconcile: streaming links failed for %r", state.display_title)
            links = {}
        return anime_body(state, links)

    async def _advance(self, kind: str, entry: GroupEntry, state, body: str, report: PassReport) -> None:
        rec = entry.record
        latest = state.latest_progress
        try:
            delivery = await self.dispatcher.notify(
                entry.channel_id, rec.user_id, kind, state.display_title, body
            )
            delivered = delivery.delivered
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("reconcile: dispatcher raised for user %s", rec.user_id)
            delivered = False

        if delivered:
            report.notified += 1
        else:
            report.undelivered += 1

        # progress moves on even when delivery failed; no resend next tick
        self.store.advance_progress(rec.user_id, rec.guild_id, kind, entry.watch.title, latest)
        entry.watch.progress = latest
        report.advanced += 1
        log.info(
            "reconcile: %s %r advanced to %s for user %s (delivered=%s)",
            kind,
            state.display_title,
            format_progress(latest),
            rec.user_id,
            delivered,
        )
