from __future__ import annotations

import os
import sys
import asyncio
import logging
import signal
from contextlib import suppress
from typing import Iterable, List, Optional, Sequence

import aiohttp
import discord
from discord.ext import commands

from . import config
from .db import ensure_db
from .utils.anilist import AniListClient
from .utils.mangadex import MangaDexClient
from .utils.streaming import StreamingLinks

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger("animebot")


# -----------------------------------------------------------------------------
# Intents
# -----------------------------------------------------------------------------
def build_intents() -> discord.Intents:
    """Privileged intents must also be enabled in the Developer Portal."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True  # privileged
    intents.message_content = True  # privileged
    intents.guild_messages = True
    intents.dm_messages = True
    return intents


INTENTS = build_intents()

EXTENSIONS: Sequence[str] = (
    "animebot.cogs.subscriptions",
    "animebot.cogs.watcher",
    "animebot.cogs.lifecycle",
)


# -----------------------------------------------------------------------------
# Bot
# -----------------------------------------------------------------------------
class AnimeBot(commands.Bot):
    def __init__(self) -> None:
        super().__init__(command_prefix=config.COMMAND_PREFIX, intents=INTENTS, help_command=None)
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.anilist: Optional[AniListClient] = None
        self.mangadex: Optional[MangaDexClient] = None
        self.streaming_links: Optional[StreamingLinks] = None
        self._shutdown_signal: str | None = None  # SIGINT/SIGTERM set by runner

    # ---- lifecycle ----
    async def setup_hook(self) -> None:
        ensure_db()
        log.info("Database ensured/connected.")

        self.http_session = aiohttp.ClientSession(headers={"User-Agent": config.USER_AGENT})
        self.anilist = AniListClient(self.http_session)
        self.mangadex = MangaDexClient(self.http_session)
        self.streaming_links = StreamingLinks(self.http_session)

        await self._load_extensions(EXTENSIONS)

    async def _load_extensions(self, names: Iterable[str]) -> None:
        for ext in names:
            try:
                await self.load_extension(ext)
                log.info("Loaded extension: %s", ext)
            except commands.ExtensionError:
                log.exception("Failed to load extension: %s", ext)

    async def on_ready(self) -> None:
        if self.user:
            log.info("Bot is online as %s (%s)", self.user, self.user.id)

    async def close(self) -> None:
        log.info(
            "Shutdown initiated (%s): closing HTTP session and bot.",
            self._shutdown_signal or "shutdown requested",
        )
        await super().close()
        if self.http_session and not self.http_session.closed:
            await self.http_session.close()


# -----------------------------------------------------------------------------
# Liveness
# -----------------------------------------------------------------------------
def _build_liveness_server(port: int):
    import uvicorn

    from web.app.main import app

    return uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning", lifespan="off")
    )


# -----------------------------------------------------------------------------
# Runner
# -----------------------------------------------------------------------------
async def _run_bot() -> None:
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        log.error("Set DISCORD_TOKEN env var.")
        raise SystemExit(1)

    bot = AnimeBot()
    stop_event = asyncio.Event()

    def _signal_handler(signame: str) -> None:
        bot._shutdown_signal = signame
        log.warning("Received %s, requesting shutdown...", signame)
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _signal_handler, sig.name)

    async def _start():
        try:
            await bot.start(token)
        except Exception:
            log.exception("Bot.start crashed")
        finally:
            stop_event.set()

    tasks: List[asyncio.Task] = [asyncio.create_task(_start())]

    server = None
    if config.LIVENESS_PORT:
        server = _build_liveness_server(config.LIVENESS_PORT)
        tasks.append(asyncio.create_task(server.serve()))
        log.info("Uptime server running on port %s", config.LIVENESS_PORT)

    await stop_event.wait()

    if server is not None:
        server.should_exit = True
    with suppress(Exception):
        await bot.close()

    for t in tasks:
        with suppress(asyncio.CancelledError):
            if not t.done():
                t.cancel()
            await t

    log.info("Shutdown complete.")


def main() -> None:
    try:
        asyncio.run(_run_bot())
    except KeyboardInterrupt:
        log.warning("KeyboardInterrupt, exiting.")
    except SystemExit:
        raise
    except Exception:
        log.exception("Fatal error in main()")
        raise


if __name__ == "__main__":
    main()
