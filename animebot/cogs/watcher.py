from __future__ import annotations

import logging
from typing import Optional

from discord.ext import commands, tasks

from ..config import POLL_SECONDS
from ..utils.notify import NotificationDispatcher
from ..utils.reconcile import Reconciler

log = logging.getLogger(__name__)


class Watcher(commands.Cog):
    """Runs the reconciliation tick on a fixed schedule."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.reconciler: Optional[Reconciler] = None

    async def cog_load(self):
        self.reconciler = Reconciler(
            self.bot.anilist,
            self.bot.mangadex,
            self.bot.streaming_links,
            NotificationDispatcher(self.bot),
        )
        self.poll_updates.start()

    async def cog_unload(self):
        self.poll_updates.cancel()

    @tasks.loop(seconds=POLL_SECONDS)
    async def poll_updates(self):
        if self.reconciler is None or not self.bot.is_ready():
            return
        log.info("watcher: checking for updates...")
        try:
            report = await self.reconciler.run_tick()
        except Exception:
            log.exception("watcher: tick crashed")
            return
        if report is not None:
            log.info("watcher: tick done fetches=%d notified=%d", report.fetches, report.notified)

    @poll_updates.before_loop
    async def _before_poll(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(Watcher(bot))
