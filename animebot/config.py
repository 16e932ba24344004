from __future__ import annotations
import os
from dateutil import tz

DATA_DIR = os.getenv("DATA_DIR", "./data")

TZ_NAME = os.getenv("TZ", "UTC")
TZ = tz.gettz(TZ_NAME)
LOCAL_TZ = TZ

BOT_DB_PATH = os.getenv("BOT_DB_PATH", os.path.join(DATA_DIR, "animebot.sqlite3"))

COMMAND_PREFIX = os.getenv("COMMAND_PREFIX", "!")
USER_AGENT = os.getenv("USER_AGENT", "animebot/1.0 (discord bot)")

# Scheduler
POLL_SECONDS = int(os.getenv("POLL_SECONDS", "60"))

# Randomized pause before each upstream fetch (seconds)
ANIME_JITTER = (
    float(os.getenv("ANIME_JITTER_MIN_SEC", "0.5")),
    float(os.getenv("ANIME_JITTER_MAX_SEC", "1.0")),
)
MANGA_JITTER = (
    float(os.getenv("MANGA_JITTER_MIN_SEC", "0.3")),
    float(os.getenv("MANGA_JITTER_MAX_SEC", "0.6")),
)

FETCH_DEADLINE_SEC = float(os.getenv("FETCH_DEADLINE_SEC", "30"))
LINK_DEADLINE_SEC = float(os.getenv("LINK_DEADLINE_SEC", "10"))
RATE_LIMIT_BACKOFF_SEC = float(os.getenv("RATE_LIMIT_BACKOFF_SEC", "2"))

ANILIST_API = os.getenv("ANILIST_API", "https://graphql.anilist.co")
MANGADEX_API = os.getenv("MANGADEX_API", "https://api.mangadex.org")

LIVENESS_PORT = int(os.getenv("LIVENESS_PORT", "0") or 0) or None
