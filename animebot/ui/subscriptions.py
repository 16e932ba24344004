from __future__ import annotations

from typing import List, Sequence, Tuple

import discord

from ..models.common import format_progress
from ..models.subscriptions import SubscriberRecord
from ..strings import S
from ..utils.results import AnimeState, MangaState

__all__ = [
    "HELP_ENTRIES",
    "build_anime_embed",
    "build_help_embed",
    "build_manga_embed",
    "build_subscriptions_embed",
]

EMBED_COLOR = discord.Color.from_str("#0099ff")
MAX_FIELD_LEN = 1024

# (usage, string key)
HELP_ENTRIES: Sequence[Tuple[str, str]] = (
    ("notify_anime <name>", "help.notify_anime"),
    ("notify_manga <name>", "help.notify_manga"),
    ("unnotify_anime <name>", "help.unnotify_anime"),
    ("unnotify_manga <name>", "help.unnotify_manga"),
    ("my_subscriptions", "help.my_subscriptions"),
    ("get_anime <name>", "help.get_anime"),
    ("get_manga <name>", "help.get_manga"),
    ("setchannel <channel name>", "help.setchannel"),
    ("setnotificationchannel <channel name>", "help.setnotificationchannel"),
)


def _clip(text: str) -> str:
    return text if len(text) <= MAX_FIELD_LEN else text[: MAX_FIELD_LEN - 1] + "…"


def build_help_embed() -> discord.Embed:
    embed = discord.Embed(
        title=S("help.title"),
        description=S("help.description"),
        color=EMBED_COLOR,
    )
    for usage, key in HELP_ENTRIES:
        embed.add_field(name=f"**{usage}**", value=S(key), inline=False)
    embed.set_footer(text=S("help.footer"))
    return embed


def build_subscriptions_embed(record: SubscriberRecord) -> discord.Embed:
    anime: List[str] = [
        S("list.anime_line", title=w.title, progress=format_progress(w.progress)) for w in record.anime
    ]
    manga: List[str] = [
        S("list.manga_line", title=w.title, progress=format_progress(w.progress)) for w in record.manga
    ]
    embed = discord.Embed(title=S("list.title"), color=EMBED_COLOR)
    embed.add_field(name=S("list.anime"), value=_clip(", ".join(anime) or S("list.none")), inline=False)
    embed.add_field(name=S("list.manga"), value=_clip(", ".join(manga) or S("list.none")), inline=False)
    return embed


def build_anime_embed(state: AnimeState) -> discord.Embed:
    embed = discord.Embed(
        title=state.display_title,
        url=state.reference_url or None,
        color=EMBED_COLOR,
    )
    embed.add_field(name=S("info.anime.episode"), value=str(state.latest_episode), inline=True)
    return embed


def build_manga_embed(state: MangaState) -> discord.Embed:
    embed = discord.Embed(title=state.display_title, color=EMBED_COLOR)
    embed.add_field(name=S("info.manga.chapter"), value=format_progress(state.latest_chapter), inline=True)
    if state.reference_url:
        embed.description = state.reference_url
    return embed
