"""
Provider payload normalization.

Turns a Baileys / Evolution API style message (``key.remoteJid``,
``pushName``, ``message.<contentType>``) into an InboundEvent. Unknown
content types become an unsupported DOCUMENT event instead of failing;
payloads with no sender or no message body raise NormalizationError.

Usage:
    event = normalize({"key": {"remoteJid": "5584999990000@s.whatsapp.net", "id": "A1"},
                       "message": {"conversation": "oi"}})
    event.kind  # EventKind.TEXT
"""

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from demand_intake.config import settings
from demand_intake.schemas.event_schema import EventKind, InboundEvent
from demand_intake.utils import sender_id_from_jid

logger = logging.getLogger(__name__)

_WRAPPERS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2")
_IGNORED_JID_SUFFIXES = ("@g.us", "@broadcast", "@newsletter")

_DEFAULT_MIME = {
    EventKind.IMAGE: "image/jpeg",
    EventKind.VIDEO: "video/mp4",
    EventKind.AUDIO: "audio/ogg",
    EventKind.STICKER: "image/webp",
    EventKind.DOCUMENT: "application/octet-stream",
}


class NormalizationError(Exception):
    """Raised when a provider payload cannot be turned into an InboundEvent.

    ``sender_id`` is set when the sender could still be identified, so the
    caller can answer with a generic reply. ``ignorable`` marks payloads
    that must be dropped silently (own messages, groups, broadcasts).
    """

    def __init__(self, message: str, sender_id: Optional[str] = None, ignorable: bool = False):
        super().__init__(message)
        self.sender_id = sender_id
        self.ignorable = ignorable


def _unwrap(message: dict[str, Any]) -> dict[str, Any]:
    for wrapper in _WRAPPERS:
        inner = message.get(wrapper)
        if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
            return _unwrap(inner["message"])
    doc = message.get("documentWithCaptionMessage")
    if isinstance(doc, dict) and isinstance(doc.get("message"), dict):
        return doc["message"]
    return message


def _decode_base64(raw: Optional[str]) -> Optional[bytes]:
    if not raw:
        return None
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Discarding malformed inline media payload")
        return None


def _received_at(payload: dict[str, Any]) -> datetime:
    stamp = payload.get("messageTimestamp")
    try:
        return datetime.fromtimestamp(int(stamp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc)


def normalize(raw_payload: dict[str, Any]) -> InboundEvent:
    """Normalize a provider message into an InboundEvent.

    Raises:
        NormalizationError: If the sender or the message body is missing,
            or the message must be ignored.
    """
    payload = raw_payload
    if isinstance(payload.get("data"), dict) and "key" in payload["data"]:
        payload = payload["data"]

    key = payload.get("key")
    if not isinstance(key, dict) or not key.get("remoteJid"):
        raise NormalizationError("payload has no sender")

    jid = str(key["remoteJid"])
    if jid.endswith(_IGNORED_JID_SUFFIXES):
        raise NormalizationError(f"ignoring non-private chat {jid}", ignorable=True)
    sender_id = sender_id_from_jid(jid)
    if key.get("fromMe"):
        raise NormalizationError("ignoring own message", sender_id=sender_id, ignorable=True)

    message = payload.get("message")
    if not isinstance(message, dict) or not message:
        raise NormalizationError("payload has no message body", sender_id=sender_id)
    message = _unwrap(message)

    base = {
        "sender_id": sender_id,
        "provider_message_id": str(key.get("id") or ""),
        "received_at": _received_at(payload),
        "display_name": payload.get("pushName") or None,
    }
    inline_media = _decode_base64(payload.get("base64") or message.get("base64"))

    if isinstance(message.get("conversation"), str):
        return _text_event(base, message["conversation"])
    extended = message.get("extendedTextMessage")
    if isinstance(extended, dict) and isinstance(extended.get("text"), str):
        return _text_event(base, extended["text"])

    for content_key, kind in (
        ("imageMessage", EventKind.IMAGE),
        ("videoMessage", EventKind.VIDEO),
        ("audioMessage", EventKind.AUDIO),
        ("stickerMessage", EventKind.STICKER),
        ("documentMessage", EventKind.DOCUMENT),
    ):
        content = message.get(content_key)
        if isinstance(content, dict):
            return InboundEvent(
                kind=kind,
                media_bytes=inline_media,
                mime_type=(content.get("mimetype") or _DEFAULT_MIME[kind]).split(";")[0],
                caption=(content.get("caption") or "").strip() or None,
                media_url=content.get("url") or None,
                **base,
            )

    for content_key in ("locationMessage", "liveLocationMessage"):
        content = message.get(content_key)
        if isinstance(content, dict):
            try:
                lat = float(content["degreesLatitude"])
                lon = float(content["degreesLongitude"])
            except (KeyError, TypeError, ValueError):
                lat = lon = None
            return InboundEvent(
                kind=EventKind.LOCATION,
                lat=lat,
                lon=lon,
                text=content.get("address") or content.get("name") or None,
                **base,
            )

    logger.info("Unsupported content type(s) %s from %s", sorted(message), sender_id)
    return InboundEvent(kind=EventKind.DOCUMENT, supported=False, **base)


def _text_event(base: dict[str, Any], text: str) -> InboundEvent:
    text = text.strip()
    if not text:
        raise NormalizationError("empty text message", sender_id=base["sender_id"])
    return InboundEvent(kind=EventKind.TEXT, text=text, **base)


class MediaDownloader:
    """Fetches media referenced by URL when the provider did not inline it."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    async def fetch(self, event: InboundEvent) -> InboundEvent:
        """Return the event with media bytes, or unchanged when the download fails."""
        if event.media_bytes is not None or not event.media_url:
            return event
        client = self._client or httpx.AsyncClient(timeout=settings.media.download_timeout_sec)
        try:
            response = await client.get(event.media_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Media download failed for %s: %s", event.provider_message_id, exc)
            return event
        finally:
            if self._client is None:
                await client.aclose()
        return event.with_media(response.content)
