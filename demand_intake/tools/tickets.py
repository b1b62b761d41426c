"""
Ticket desk contract and an in-memory reference desk.

In production the desk is the municipal demand system (database, file
storage and notification fan-out). The engine only relies on
``create_ticket`` and ``lookup_ticket``.
"""

import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, TypedDict

from demand_intake.config import settings
from demand_intake.schemas.ticket_schema import (
    TicketDraft,
    TicketHistoryEntry,
    TicketRef,
    TicketState,
    TicketStatus,
)
from demand_intake.tools.attachments import AttachmentStash, extension_for
from demand_intake.tools.categories import resolve_category
from demand_intake.utils import first_words

logger = logging.getLogger(__name__)

PROTOCOL_ALPHABET = string.ascii_uppercase + string.digits
TITLE_WORDS = 8
TITLE_MAX_CHARS = 60


class TicketDeskError(Exception):
    """Raised when the ticket desk cannot serve a request."""


class MaterializationError(TicketDeskError):
    """Raised when a ticket could not be created."""


class TicketDesk(Protocol):
    async def create_ticket(self, draft: TicketDraft) -> TicketRef:
        ...

    async def lookup_ticket(self, protocol: str) -> Optional[TicketStatus]:
        ...


class StoredAttachment(TypedDict):
    filename: str
    kind: str
    mime_type: str
    size: int
    data: bytes


class TicketRecord(TypedDict):
    """Full ticket record kept by the in-memory desk."""

    id: str
    protocol: str
    title: str
    description: str
    category: str
    category_slug: str
    secretariat: str
    address_text: Optional[str]
    neighborhood: Optional[str]
    coordinates: Optional[dict]
    urgency: Optional[str]
    requester_channel_id: str
    requester_name: Optional[str]
    source: str
    state: TicketState
    created_at: datetime
    sla_deadline: datetime
    resolved_at: Optional[datetime]
    attachments: list[StoredAttachment]
    history: list[TicketHistoryEntry]


def generate_protocol(now: datetime) -> str:
    """Protocol numbers look like 202601-ABC123."""
    suffix = "".join(secrets.choice(PROTOCOL_ALPHABET) for _ in range(6))
    return f"{now:%Y%m}-{suffix}"


class InMemoryTicketDesk:
    """Reference desk storing tickets in a dict and notifying listeners."""

    def __init__(self, stash: AttachmentStash) -> None:
        self.stash = stash
        self._tickets: dict[str, TicketRecord] = {}
        self._listeners: list[Callable[[TicketRecord], None]] = []

    def subscribe(self, listener: Callable[[TicketRecord], None]) -> None:
        """Register a callback fired once per created ticket."""
        self._listeners.append(listener)

    async def create_ticket(self, draft: TicketDraft) -> TicketRef:
        if not draft.description.strip():
            raise MaterializationError("Cannot create a ticket without a description")
        if not draft.attachments:
            raise MaterializationError("Cannot create a ticket without a photo")

        now = datetime.now(timezone.utc)
        protocol = generate_protocol(now)
        while protocol in self._tickets:
            protocol = generate_protocol(now)

        attachments: list[StoredAttachment] = []
        for index, ref in enumerate(draft.attachments, start=1):
            data = self.stash.get(ref)
            if data is None:
                raise MaterializationError(f"Attachment {ref.ref} is no longer available")
            attachments.append({
                "filename": f"anexo_{index}{extension_for(ref.mime_type)}",
                "kind": ref.kind,
                "mime_type": ref.mime_type,
                "size": ref.size,
                "data": data,
            })

        category = resolve_category(draft.category)
        record: TicketRecord = {
            "id": uuid.uuid4().hex,
            "protocol": protocol,
            "title": first_words(draft.description, TITLE_WORDS, TITLE_MAX_CHARS),
            "description": draft.description,
            "category": category["name"],
            "category_slug": category["slug"],
            "secretariat": settings.bot.secretariat,
            "address_text": draft.address_text,
            "neighborhood": draft.neighborhood,
            "coordinates": draft.coordinates.model_dump() if draft.coordinates else None,
            "urgency": draft.urgency.value if draft.urgency else None,
            "requester_channel_id": draft.requester_channel_id,
            "requester_name": draft.requester_name,
            "source": draft.source,
            "state": TicketState.OPEN,
            "created_at": now,
            "sla_deadline": now + timedelta(days=category["sla_days"]),
            "resolved_at": None,
            "attachments": attachments,
            "history": [TicketHistoryEntry(at=now, action="CREATED")],
        }
        self._tickets[protocol] = record
        logger.info(
            "Ticket created: %s (%s) with %d attachment(s)",
            protocol, record["category"], len(attachments),
        )
        for listener in self._listeners:
            listener(record)
        return TicketRef(id=record["id"], protocol=protocol)

    async def lookup_ticket(self, protocol: str) -> Optional[TicketStatus]:
        record = self._tickets.get(protocol.strip().upper())
        if record is None:
            return None
        return TicketStatus(
            protocol=record["protocol"],
            state=record["state"],
            title=record["title"],
            address_text=record["address_text"],
            neighborhood=record["neighborhood"],
            secretariat=record["secretariat"],
            created_at=record["created_at"],
            resolved_at=record["resolved_at"],
            history=sorted(record["history"], key=lambda h: h.at, reverse=True),
        )

    def update_state(self, protocol: str, state: TicketState, actor: Optional[str] = None) -> None:
        """Move a ticket to a new state, recording it in the history."""
        record = self._tickets.get(protocol)
        if record is None:
            raise TicketDeskError(f"Ticket {protocol} not found")
        now = datetime.now(timezone.utc)
        record["state"] = state
        if state == TicketState.RESOLVED:
            record["resolved_at"] = now
        action = "RESOLVED" if state == TicketState.RESOLVED else "STATUS_CHANGED"
        record["history"].append(TicketHistoryEntry(at=now, action=action, actor=actor))

    def get(self, protocol: str) -> Optional[TicketRecord]:
        return self._tickets.get(protocol)

    def all(self) -> list[TicketRecord]:
        return list(self._tickets.values())

    def reset(self) -> None:
        """Clear all tickets. Used by test fixtures for isolation."""
        self._tickets.clear()
