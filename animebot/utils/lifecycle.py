from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

import discord

from ..config import LOCAL_TZ
from ..strings import S

# (activity type, string key), rotated by day of month
DAILY_STATUSES: Tuple[Tuple[discord.ActivityType, str], ...] = (
    (discord.ActivityType.watching, "presence.anime"),
    (discord.ActivityType.streaming, "presence.manga"),
)


def status_index(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(tz=LOCAL_TZ)
    return now.day % len(DAILY_STATUSES)


def build_activity(index: int) -> discord.Activity:
    kind, key = DAILY_STATUSES[index % len(DAILY_STATUSES)]
    return discord.Activity(type=kind, name=S(key))
