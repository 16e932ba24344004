from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

import aiohttp
import discord

from ..ui.notifications import compose_message
from .channel_resolver import resolve_channel

log = logging.getLogger(__name__)

DeliveryStatus = Literal["delivered", "skipped", "failed"]

__all__ = ["DeliveryResult", "NotificationDispatcher"]


@dataclass(frozen=True)
class DeliveryResult:
    status: DeliveryStatus
    reason: str = ""

    @property
    def delivered(self) -> bool:
        return self.status == "delivered"


DELIVERED = DeliveryResult("delivered")
NO_CHANNEL = DeliveryResult("skipped", "no channel configured")


class NotificationDispatcher:
    """Posts one subscriber notification; every failure comes back as a result, never raised."""

    def __init__(self, bot: discord.Client):
        self.bot = bot
        self._mentions = discord.AllowedMentions(users=True, roles=False, everyone=False)

    async def notify(
        self,
        channel_id: Optional[str],
        subscriber_id: str,
        kind: str,
        title: str,
        body: str,
    ) -> DeliveryResult:
        if not channel_id:
            log.info("notify: no channel for user %s; skipping %s %r", subscriber_id, kind, title)
            return NO_CHANNEL

        content = compose_message(subscriber_id, kind, title, body)
        try:
            channel = await resolve_channel(self.bot, channel_id)
            await channel.send(content, allowed_mentions=self._mentions)
        except (
            discord.HTTPException,
            discord.InvalidData,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            OSError,
            ValueError,
            AttributeError,
            TypeError,
        ) as e:
            log.warning(
                "notify: delivery to channel %s for user %s failed: %s", channel_id, subscriber_id, e
            )
            return DeliveryResult("failed", str(e) or type(e).__name__)

        log.info("notify: sent %s update %r to user %s in #%s", kind, title, subscriber_id, channel_id)
        return DELIVERED
