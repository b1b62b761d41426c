"""Shared test fixtures and helpers."""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from demand_intake.channels.outbound import RecordingDispatcher
from demand_intake.conversation.guardrails import RepetitionGuardrail
from demand_intake.conversation.slot_manager import SlotManager
from demand_intake.engine import IntakeEngine
from demand_intake.extraction.ai_backend import AIBackend, AIError, MediaPart
from demand_intake.extraction.slot_extractor import SlotExtractor
from demand_intake.schemas.event_schema import EventKind, InboundEvent
from demand_intake.schemas.session_schema import AttachmentRef, DemandSlots, Session
from demand_intake.sessions.store import InMemorySessionStore
from demand_intake.tools.attachments import AttachmentStash
from demand_intake.tools.tickets import InMemoryTicketDesk

SENDER = "5584999990000"
# 11:00 in America/Fortaleza
NOW = datetime(2026, 1, 15, 14, 0, tzinfo=timezone.utc)
JPEG = b"\xff\xd8\xff\xe0" + b"fake-jpeg" * 8


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the session store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiries: dict[str, int] = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)

    async def keys(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in self.data if k.startswith(prefix)]

    async def aclose(self):
        self.closed = True


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeBackend(AIBackend):
    """AI backend answering from a queue of canned replies.

    Each queued item is either a dict (returned as JSON), a raw string, or
    an exception instance to raise.
    """

    def __init__(self, *answers) -> None:
        self.answers = list(answers)
        self.calls: list[tuple[str, Optional[MediaPart]]] = []

    async def generate(self, prompt, media=None, temperature=None) -> str:
        self.calls.append((prompt, media))
        if not self.answers:
            raise AIError("no canned answer left")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, dict):
            return json.dumps(answer)
        return answer


@pytest.fixture
def stash():
    return AttachmentStash()


@pytest.fixture
def desk(stash):
    return InMemoryTicketDesk(stash)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def slot_manager():
    return SlotManager(DemandSlots())


@pytest.fixture
def guardrail():
    return RepetitionGuardrail(threshold=0.7)


@pytest.fixture
def make_engine(store, desk, dispatcher, stash, clock):
    """Factory for an engine sharing the test's store, desk and dispatcher."""

    def _make(backend: Optional[AIBackend] = None, ticket_desk=None, **kwargs) -> IntakeEngine:
        kwargs.setdefault("enabled", True)
        kwargs.setdefault("clock", clock)
        return IntakeEngine(
            store, SlotExtractor(backend), ticket_desk or desk, dispatcher, stash, **kwargs
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


def make_event(
    kind: EventKind = EventKind.TEXT,
    text: Optional[str] = None,
    sender_id: str = SENDER,
    media_bytes: Optional[bytes] = None,
    mime_type: Optional[str] = None,
    caption: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    message_id: str = "MSG1",
    received_at: datetime = NOW,
    **kwargs,
) -> InboundEvent:
    """Helper to create an InboundEvent with sensible defaults."""
    if kind in (EventKind.IMAGE, EventKind.VIDEO) and media_bytes is None and "no_media" not in kwargs:
        media_bytes = JPEG
        mime_type = mime_type or ("image/jpeg" if kind == EventKind.IMAGE else "video/mp4")
    kwargs.pop("no_media", None)
    return InboundEvent(
        sender_id=sender_id,
        kind=kind,
        provider_message_id=message_id,
        received_at=received_at,
        text=text,
        media_bytes=media_bytes,
        mime_type=mime_type,
        caption=caption,
        lat=lat,
        lon=lon,
        **kwargs,
    )


def make_session(now: datetime = NOW, **kwargs) -> Session:
    """Helper to create a Session for SENDER."""
    session = Session.start(kwargs.pop("sender_id", SENDER), now)
    for key, value in kwargs.items():
        setattr(session, key, value)
    return session


def make_photo(ref: str = "att-000000000001") -> AttachmentRef:
    return AttachmentRef(ref=ref, kind="image", mime_type="image/jpeg", size=len(JPEG))
