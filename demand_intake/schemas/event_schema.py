"""Normalized inbound message model shared by every provider adapter."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class EventKind(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    LOCATION = "location"
    STICKER = "sticker"
    DOCUMENT = "document"


class InboundEvent(BaseModel):
    """A single citizen message, independent of the messaging provider.

    ``supported`` is False when the provider sent a content type the engine
    does not understand; such events are normalized to DOCUMENT.
    """

    model_config = ConfigDict(frozen=True)

    sender_id: str
    kind: EventKind
    provider_message_id: str
    received_at: datetime
    text: Optional[str] = None
    media_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    display_name: Optional[str] = None
    media_url: Optional[str] = None
    supported: bool = True

    @property
    def is_visual(self) -> bool:
        return self.kind in (EventKind.IMAGE, EventKind.VIDEO)

    @property
    def carries_media(self) -> bool:
        return self.kind in (EventKind.IMAGE, EventKind.VIDEO, EventKind.AUDIO)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None

    def with_media(self, data: Optional[bytes]) -> "InboundEvent":
        """Return a copy carrying downloaded media bytes."""
        return self.model_copy(update={"media_bytes": data})
