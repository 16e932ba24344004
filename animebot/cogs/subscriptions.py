from __future__ import annotations

import logging

import discord
from discord.ext import commands

from ..models import subscriptions as subs
from ..strings import S
from ..ui.subscriptions import (
    build_anime_embed,
    build_help_embed,
    build_manga_embed,
    build_subscriptions_embed,
)
from ..utils.channel_resolver import find_text_channel
from ..utils.commands import USAGE, parse_command
from ..utils.results import NotFound, Ok

log = logging.getLogger(__name__)


class Subscriptions(commands.Cog):
    """Mention-addressed text commands that read and edit a member's watch list."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._handlers = {
            "help": self._help,
            "notify_anime": self._notify_anime,
            "notify_manga": self._notify_manga,
            "unnotify_anime": self._unnotify_anime,
            "unnotify_manga": self._unnotify_manga,
            "my_subscriptions": self._my_subscriptions,
            "get_anime": self._get_anime,
            "get_manga": self._get_manga,
            "setchannel": self._set_command_channel,
            "setnotificationchannel": self._set_notification_channel,
        }

    def _bot_name(self) -> str:
        return self.bot.user.name if self.bot.user else "BotName"

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot or self.bot.user is None:
            return
        parsed = parse_command(message.content, self.bot.user.id)
        if parsed is None:
            return

        log.info("command: %r args=%r from %s", parsed.command, parsed.args, message.author.id)
        if message.guild is None:
            await message.channel.send(S("cmd.guild_only"))
            return

        record = subs.find_or_create(message.author.id, message.guild.id)
        if record.command_channel_id and str(message.channel.id) != record.command_channel_id:
            log.info(
                "command: blocked from #%s (expected #%s)", message.channel.id, record.command_channel_id
            )
            return

        if not parsed.command:
            await message.channel.send(S("cmd.greeting", bot=self._bot_name()))
            return
        if not parsed.known:
            await message.channel.send(S("cmd.unknown", command=parsed.command, bot=self._bot_name()))
            return
        if parsed.missing_args:
            await message.channel.send(
                S("cmd.missing_args", bot=self._bot_name(), usage=USAGE[parsed.command])
            )
            return

        try:
            await self._handlers[parsed.command](message, parsed.args)
        except discord.HTTPException:
            log.exception("command: reply failed for %r", parsed.command)

    # ------------------------------------------------------------------
    # Handlers (each re-reads the record right before mutating it)
    # ------------------------------------------------------------------
    def _record(self, message: discord.Message) -> subs.SubscriberRecord:
        return subs.find_or_create(message.author.id, message.guild.id)

    async def _help(self, message: discord.Message, args: str):
        await message.channel.send(embed=build_help_embed())

    async def _subscribe(self, message: discord.Message, kind: str, result) -> None:
        if isinstance(result, NotFound):
            await message.channel.send(S(f"sub.{kind}.not_found"))
            return
        if not isinstance(result, Ok):
            await message.channel.send(S("sub.lookup_failed"))
            return

        state = result.value
        record = self._record(message)
        added = subs.add_watch(record, kind, state.display_title, state.latest_progress)
        if added:
            await message.channel.send(S(f"sub.{kind}.ok", title=state.display_title))
        else:
            await message.channel.send(S("sub.already", title=state.display_title))

    async def _notify_anime(self, message: discord.Message, args: str):
        await self._subscribe(message, "anime", await self.bot.anilist.fetch_anime_state(args))

    async def _notify_manga(self, message: discord.Message, args: str):
        await self._subscribe(message, "manga", await self.bot.mangadex.fetch_manga_state(args))

    async def _unsubscribe(self, message: discord.Message, kind: str, title: str) -> None:
        record = self._record(message)
        watch = record.find_watch(kind, title)
        shown = watch.title if watch else title
        if subs.remove_watch(record, kind, title):
            await message.channel.send(S("unsub.ok", title=shown))
        else:
            await message.channel.send(S("unsub.not_watching", title=shown))

    async def _unnotify_anime(self, message: discord.Message, args: str):
        await self._unsubscribe(message, "anime", args)

    async def _unnotify_manga(self, message: discord.Message, args: str):
        await self._unsubscribe(message, "manga", args)

    async def _my_subscriptions(self, message: discord.Message, args: str):
        await message.channel.send(embed=build_subscriptions_embed(self._record(message)))

    async def _get_anime(self, message: discord.Message, args: str):
        result = await self.bot.anilist.fetch_anime_state(args)
        if isinstance(result, Ok):
            await message.channel.send(embed=build_anime_embed(result.value))
        elif isinstance(result, NotFound):
            await message.channel.send(S("sub.anime.not_found"))
        else:
            await message.channel.send(S("sub.lookup_failed"))

    async def _get_manga(self, message: discord.Message, args: str):
        result = await self.bot.mangadex.fetch_manga_state(args)
        if isinstance(result, Ok):
            await message.channel.send(embed=build_manga_embed(result.value))
        elif isinstance(result, NotFound):
            await message.channel.send(S("sub.manga.not_found"))
        else:
            await message.channel.send(S("sub.lookup_failed"))

    async def _set_command_channel(self, message: discord.Message, args: str):
        target = find_text_channel(message.guild, args)
        if target is None:
            await message.channel.send(S("channel.not_found", name=args.lower()))
            return
        record = self._record(message)
        subs.set_channel(record, "command", target.id)
        if not record.notification_channel_id:
            subs.set_channel(record, "notification", target.id)
        await message.channel.send(S("channel.command_set", channel_id=target.id))

    async def _set_notification_channel(self, message: discord.Message, args: str):
        target = find_text_channel(message.guild, args)
        if target is None:
            await message.channel.send(S("channel.not_found", name=args.lower()))
            return
        subs.set_channel(self._record(message), "notification", target.id)
        await message.channel.send(S("channel.notification_set", channel_id=target.id))


async def setup(bot: commands.Bot):
    await bot.add_cog(Subscriptions(bot))
