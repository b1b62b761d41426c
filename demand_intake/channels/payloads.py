"""Builders for provider-shaped webhook payloads.

Used by the console demo and the replay runner to feed the engine the same
shape the messaging provider posts.
"""

import base64
import itertools
import time
from typing import Any, Optional

_counter = itertools.count(1)


def _envelope(sender_id: str, message: dict[str, Any], push_name: Optional[str],
              message_id: Optional[str], base64_media: Optional[bytes] = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "key": {
            "remoteJid": f"{sender_id}@s.whatsapp.net",
            "fromMe": False,
            "id": message_id or f"MSG{next(_counter):08d}",
        },
        "pushName": push_name,
        "messageTimestamp": int(time.time()),
        "message": message,
    }
    if base64_media is not None:
        payload["message"]["base64"] = base64.b64encode(base64_media).decode("ascii")
    return payload


def text_payload(sender_id: str, text: str, push_name: Optional[str] = None,
                 message_id: Optional[str] = None) -> dict[str, Any]:
    return _envelope(sender_id, {"conversation": text}, push_name, message_id)


def media_payload(sender_id: str, kind: str, data: Optional[bytes], mime_type: str,
                  caption: Optional[str] = None, push_name: Optional[str] = None,
                  message_id: Optional[str] = None) -> dict[str, Any]:
    """Image, video, audio, sticker or document message with inline bytes."""
    content: dict[str, Any] = {"mimetype": mime_type}
    if caption:
        content["caption"] = caption
    return _envelope(sender_id, {f"{kind}Message": content}, push_name, message_id, data)


def location_payload(sender_id: str, lat: float, lon: float, push_name: Optional[str] = None,
                     message_id: Optional[str] = None) -> dict[str, Any]:
    message = {"locationMessage": {"degreesLatitude": lat, "degreesLongitude": lon}}
    return _envelope(sender_id, message, push_name, message_id)
