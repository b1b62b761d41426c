"""Outbound message dispatch.

The engine talks to an ``OutboundDispatcher``. Provider adapters implement
it; ``RetryingDispatcher`` wraps any of them with long-message splitting
and bounded retries. ``RecordingDispatcher`` keeps messages in memory for
the console demo and tests.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from demand_intake.config import settings
from demand_intake.utils import split_message

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised when a message could not be handed to the messaging provider."""


class OutboundDispatcher(Protocol):
    async def send_text(self, sender_id: str, text: str) -> None:
        ...

    async def send_media(
        self, sender_id: str, data: bytes, mime_type: str, caption: Optional[str] = None
    ) -> None:
        ...


@dataclass
class OutboundMessage:
    sender_id: str
    text: str
    mime_type: Optional[str] = None


class RecordingDispatcher:
    """Keeps every outbound message in memory and logs it."""

    def __init__(self) -> None:
        self.sent: list[OutboundMessage] = []

    async def send_text(self, sender_id: str, text: str) -> None:
        logger.info("-> %s: %s", sender_id, text.replace("\n", " | "))
        self.sent.append(OutboundMessage(sender_id=sender_id, text=text))

    async def send_media(
        self, sender_id: str, data: bytes, mime_type: str, caption: Optional[str] = None
    ) -> None:
        logger.info("-> %s: [%s, %d bytes] %s", sender_id, mime_type, len(data), caption or "")
        self.sent.append(OutboundMessage(sender_id=sender_id, text=caption or "", mime_type=mime_type))

    def texts_for(self, sender_id: str) -> list[str]:
        return [m.text for m in self.sent if m.sender_id == sender_id]

    def reset(self) -> None:
        self.sent.clear()


class RetryingDispatcher:
    """Splits long texts and retries failed deliveries with exponential backoff."""

    def __init__(
        self,
        inner: OutboundDispatcher,
        attempts: Optional[int] = None,
        backoff_sec: Optional[float] = None,
        max_chars: Optional[int] = None,
    ) -> None:
        self.inner = inner
        self.attempts = attempts or settings.media.delivery_attempts
        self.backoff_sec = settings.media.delivery_backoff_sec if backoff_sec is None else backoff_sec
        self.max_chars = max_chars or settings.media.max_message_chars

    async def _with_retries(self, label: str, call) -> None:
        delay = self.backoff_sec
        for attempt in range(1, self.attempts + 1):
            try:
                await call()
                return
            except DeliveryError as exc:
                if attempt == self.attempts:
                    raise
                logger.warning(
                    "%s delivery failed (attempt %d/%d): %s", label, attempt, self.attempts, exc
                )
                await asyncio.sleep(delay)
                delay *= 2

    async def send_text(self, sender_id: str, text: str) -> None:
        for chunk in split_message(text, self.max_chars):
            await self._with_retries(
                "text", lambda chunk=chunk: self.inner.send_text(sender_id, chunk)
            )

    async def send_media(
        self, sender_id: str, data: bytes, mime_type: str, caption: Optional[str] = None
    ) -> None:
        await self._with_retries(
            "media", lambda: self.inner.send_media(sender_id, data, mime_type, caption)
        )
