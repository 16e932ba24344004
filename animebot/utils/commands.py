from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional

__all__ = ["ParsedCommand", "USAGE", "VALID_COMMANDS", "parse_command"]

ALIASES: Dict[str, str] = {"h": "help"}

# command -> usage (args shown when required)
USAGE: Dict[str, str] = {
    "help": "help",
    "notify_anime": "notify_anime <name>",
    "notify_manga": "notify_manga <name>",
    "unnotify_anime": "unnotify_anime <name>",
    "unnotify_manga": "unnotify_manga <name>",
    "my_subscriptions": "my_subscriptions",
    "get_anime": "get_anime <name>",
    "get_manga": "get_manga <name>",
    "setchannel": "setchannel <channel name>",
    "setnotificationchannel": "setnotificationchannel <channel name>",
}
VALID_COMMANDS = frozenset(USAGE)
NEEDS_ARGS = frozenset(cmd for cmd, usage in USAGE.items() if "<" in usage)


@dataclass(frozen=True)
class ParsedCommand:
    command: str
    args: str = ""

    @property
    def known(self) -> bool:
        return self.command in VALID_COMMANDS

    @property
    def missing_args(self) -> bool:
        return self.command in NEEDS_ARGS and not self.args


def parse_command(content: str, bot_user_id: int | str) -> Optional[ParsedCommand]:
    """
    `<@bot> notify_anime  One Piece` -> ParsedCommand("notify_anime", "One Piece").
    Returns None when the message doesn't start with a mention of the bot.
    """
    m = re.match(rf"^\s*<@!?{re.escape(str(bot_user_id))}>", content or "")
    if not m:
        return None
    words = content[m.end():].split()
    if not words:
        return ParsedCommand("")
    command = words[0].lower()
    return ParsedCommand(ALIASES.get(command, command), " ".join(words[1:]))
