from __future__ import annotations

import discord


async def resolve_channel(bot: discord.Client, channel_id: str | int):
    """Cached lookup first, then an API fetch. Raises on bad ids or missing access."""
    cid = int(channel_id)
    ch = bot.get_channel(cid)
    if ch is None:
        ch = await bot.fetch_channel(cid)
    return ch


def find_text_channel(guild: discord.Guild, name: str):
    """Case-insensitive match on a guild text channel name (no leading #)."""
    wanted = (name or "").strip().lstrip("#").lower()
    if not wanted:
        return None
    for ch in guild.text_channels:
        if ch.name.lower() == wanted:
            return ch
    return None
