from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands, tasks

from ..utils.lifecycle import build_activity, status_index

log = logging.getLogger(__name__)


class LifecycleCog(commands.Cog):
    """Rotates the bot's presence once a day."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._current: Optional[int] = None

    async def cog_load(self):
        self.rotate_status.start()

    async def cog_unload(self):
        self.rotate_status.cancel()

    @tasks.loop(hours=1)
    async def rotate_status(self):
        idx = status_index()
        if idx == self._current:
            return
        activity = build_activity(idx)
        try:
            await self.bot.change_presence(activity=activity, status=discord.Status.online)
        except (discord.HTTPException, ConnectionError) as e:
            log.warning("lifecycle: presence update failed: %s", e)
            return
        self._current = idx
        log.info("lifecycle: status set to %s %s", activity.type.name, activity.name)

    @rotate_status.before_loop
    async def _before_rotate(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(LifecycleCog(bot))
