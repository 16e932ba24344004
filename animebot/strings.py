from __future__ import annotations
from typing import Any


def S(key: str, /, **fmt: Any) -> str:
    """Lookup + format. Unknown keys return the key; safe on format errors."""
    template = _STRINGS.get(key, key)
    try:
        return template.format(**fmt) if fmt else template
    except (KeyError, IndexError, ValueError):
        return template


# ===============================================================
# Strings
# ===============================================================
_STRINGS: dict[str, str] = {
    # ---- command glue ----
    "cmd.greeting": "Hi! Type `@{bot} help` to use the bot.",
    "cmd.unknown": "Unknown command: `{command}`\nTry `@{bot} help` to see what I can do.",
    "cmd.missing_args": "Missing arguments. Usage: `@{bot} {usage}`",
    "cmd.guild_only": "This command must be run in a server.",
    # ---- help ----
    "help.title": "Anime/Manga Bot Commands",
    "help.description": "Here are the available commands you can use:",
    "help.footer": "Mention the bot or use @BotName help to see this menu anytime.",
    "help.notify_anime": "Subscribe to an anime. You will be notified when a new episode is released.",
    "help.notify_manga": "Subscribe to a manga. You will be notified when a new chapter is released.",
    "help.unnotify_anime": "Stop watching an anime.",
    "help.unnotify_manga": "Stop watching a manga.",
    "help.my_subscriptions": "Shows the anime and manga you're subscribed to.",
    "help.get_anime": "Fetches information about a specific anime.",
    "help.get_manga": "Fetches information about a specific manga.",
    "help.setchannel": "Set the only channel allowed to run commands.",
    "help.setnotificationchannel": "Set the channel where notifications are sent (optional).",
    # ---- subscribe / unsubscribe ----
    "sub.anime.not_found": "Anime not found.",
    "sub.manga.not_found": "Manga not found.",
    "sub.lookup_failed": "Couldn't reach the catalog right now. Try again in a bit.",
    "sub.anime.ok": "Subscribed to {title} anime updates.",
    "sub.manga.ok": "Subscribed to {title} manga updates.",
    "sub.already": "Already subscribed to {title}.",
    "unsub.ok": "Unsubscribed from {title}.",
    "unsub.not_watching": "You aren't watching {title}.",
    # ---- listing ----
    "list.title": "Your Subscriptions",
    "list.anime": "Anime",
    "list.manga": "Manga",
    "list.none": "None",
    "list.anime_line": "{title} (ep {progress})",
    "list.manga_line": "{title} (ch {progress})",
    # ---- lookups ----
    "info.anime.episode": "Latest episode",
    "info.manga.chapter": "Latest chapter",
    # ---- channels ----
    "channel.not_found": 'Channel "{name}" not found. Be sure to type it exactly (case-insensitive, no #).',
    "channel.command_set": "Commands will now only be accepted in <#{channel_id}>.",
    "channel.notification_set": "Notifications will now be sent to <#{channel_id}>.",
    # ---- notifications ----
    "notify.header": "{mention}, new {kind} update for **{title}**!",
    "notify.anime.body": "Episode {progress}\n{url}",
    "notify.manga.body": "Chapter {progress}\n{url}",
    "notify.links.header": "Where to watch:",
    "notify.links.line": "- {source}: {url}",
    "notify.links.unavailable": "- {source}: unavailable",
    # ---- presence ----
    "presence.anime": "new anime episodes...",
    "presence.manga": "manga updates...",
    # ---- upstream errors ----
    "anilist.error.http": "AniList HTTP {code}",
    "anilist.error.graphql": "AniList query error: {message}",
    "anilist.error.payload": "AniList returned an unexpected {kind} body",
    "anilist.error.rate_limited": "AniList rate limit persisted after retry",
    "mangadex.error.search_http": "MangaDex search HTTP {code}",
    "mangadex.error.chapters_http": "MangaDex chapter feed HTTP {code} for {manga_id}",
    "mangadex.error.payload": "MangaDex returned an unexpected {kind} body",
    "streaming.error.http": "{source} HTTP {code}",
    "streaming.error.no_result": "{source}: no search result",
}
