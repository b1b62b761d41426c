"""Per-sender session state persisted between turns."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from demand_intake.schemas.extraction_schema import Urgency


class Stage(str, Enum):
    """Where a citizen is in the intake conversation."""
    IDLE = "idle"
    COLLECTING_DESCRIPTION = "collecting_description"
    COLLECTING_LOCATION = "collecting_location"
    COLLECTING_PHOTO = "collecting_photo"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONSULTING_TICKET = "consulting_ticket"
    CLOSED = "closed"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Coordinates(BaseModel):
    lat: float
    lon: float


class AttachmentRef(BaseModel):
    """Handle to media bytes held in the attachment stash."""
    ref: str
    kind: str
    mime_type: str
    size: int


class LogEntry(BaseModel):
    role: Role
    content: str


class DemandSlots(BaseModel):
    """Everything collected so far about the reported problem."""
    description: Optional[str] = None
    category: Optional[str] = None
    address_text: Optional[str] = None
    neighborhood: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    urgency: Optional[Urgency] = None
    photos: list[AttachmentRef] = Field(default_factory=list)


class Session(BaseModel):
    """
    Conversation state for one sender.

    Created lazily on the first message from an unseen sender and evicted
    on ticket creation, explicit cancel or hard TTL expiry.
    """
    sender_id: str
    stage: Stage = Stage.IDLE
    slots: DemandSlots = Field(default_factory=DemandSlots)
    conversation_log: list[LogEntry] = Field(default_factory=list)
    recent_replies: list[str] = Field(default_factory=list)
    created_at: datetime
    last_activity_at: datetime
    greeted: bool = False
    warned_idle: bool = False
    display_name: Optional[str] = None
    turn_count: int = 0

    @classmethod
    def start(cls, sender_id: str, now: datetime, display_name: Optional[str] = None) -> "Session":
        return cls(
            sender_id=sender_id,
            created_at=now,
            last_activity_at=now,
            display_name=display_name,
        )
