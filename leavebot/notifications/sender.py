"""Outbound message delivery.

``SlackSender`` posts through slack_sdk's async client; without a bot token the
``LoggingSender`` only writes the message to the log. The active sender is a
module-level singleton so tests can swap in a recording fake.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from slack_sdk.web.async_client import AsyncWebClient

from leavebot.config import settings

logger = logging.getLogger(__name__)


class Sender(Protocol):
    async def send(self, target: str, text: str) -> None: ...


class SlackSender:
    """Delivers via ``chat.postMessage``; a user id as channel opens a DM."""

    def __init__(self, token: str) -> None:
        self.client = AsyncWebClient(token=token)

    async def send(self, target: str, text: str) -> None:
        await self.client.chat_postMessage(channel=target, text=text)


class LoggingSender:
    """Fallback used when no bot token is configured."""

    async def send(self, target: str, text: str) -> None:
        logger.info("[notify → %s] %s", target, text)


_sender: Optional[Sender] = None


def get_sender() -> Sender:
    global _sender
    if _sender is None:
        if settings.SLACK_BOT_TOKEN:
            _sender = SlackSender(settings.SLACK_BOT_TOKEN)
        else:
            logger.warning("SLACK_BOT_TOKEN not set; notifications will only be logged")
            _sender = LoggingSender()
    return _sender


def set_sender(sender: Optional[Sender]) -> None:
    """Install a sender (``None`` resets to the configured default)."""
    global _sender
    _sender = sender
