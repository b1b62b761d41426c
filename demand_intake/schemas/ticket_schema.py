"""Ticket drafts handed to the ticket desk and the records it returns."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from demand_intake.schemas.extraction_schema import Urgency
from demand_intake.schemas.session_schema import AttachmentRef, Coordinates


class TicketState(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING = "PENDING"
    WAITING_INFO = "WAITING_INFO"
    FORWARDED = "FORWARDED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class TicketDraft(BaseModel):
    """Validated slot data ready to become a ticket."""
    description: str
    category: Optional[str] = None
    address_text: Optional[str] = None
    neighborhood: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    urgency: Optional[Urgency] = None
    attachments: list[AttachmentRef] = Field(default_factory=list)
    requester_channel_id: str
    requester_name: Optional[str] = None
    source: str = "WHATSAPP"


class TicketRef(BaseModel):
    id: str
    protocol: str


class TicketHistoryEntry(BaseModel):
    at: datetime
    action: str
    actor: Optional[str] = None


class TicketStatus(BaseModel):
    """Public view of a ticket for status queries."""
    protocol: str
    state: TicketState
    title: str
    address_text: Optional[str] = None
    neighborhood: Optional[str] = None
    secretariat: str
    created_at: datetime
    resolved_at: Optional[datetime] = None
    history: list[TicketHistoryEntry] = Field(default_factory=list)
