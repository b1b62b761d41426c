"""Tests for the in-memory ticket desk and the attachment stash."""

import re
from datetime import datetime, timezone

import pytest

from demand_intake.schemas.session_schema import Coordinates
from demand_intake.schemas.ticket_schema import TicketDraft, TicketState
from demand_intake.tools.attachments import extension_for
from demand_intake.tools.tickets import MaterializationError, TicketDeskError, generate_protocol
from tests.conftest import JPEG, SENDER


def draft_with(stash, **kwargs) -> TicketDraft:
    photo = stash.put(JPEG, "image", "image/jpeg")
    values = {
        "description": "Poste apagado em frente à escola municipal faz uma semana",
        "category": "ILUMINACAO",
        "address_text": "Rua das Flores, 120",
        "coordinates": Coordinates(lat=-5.9155, lon=-35.263),
        "attachments": [photo],
        "requester_channel_id": SENDER,
        "requester_name": "Maria",
    }
    values.update(kwargs)
    return TicketDraft(**values)


class TestProtocol:
    def test_format(self):
        protocol = generate_protocol(datetime(2026, 1, 15, tzinfo=timezone.utc))
        assert re.fullmatch(r"202601-[A-Z0-9]{6}", protocol)


class TestCreateTicket:
    @pytest.mark.asyncio
    async def test_creates_record_with_attachments(self, desk, stash):
        ref = await desk.create_ticket(draft_with(stash))
        record = desk.get(ref.protocol)
        assert record["category"] == "Iluminação Pública"
        assert record["category_slug"] == "iluminacao-publica"
        assert record["title"] == "Poste apagado em frente à escola municipal faz"
        assert record["state"] == TicketState.OPEN
        assert record["coordinates"] == {"lat": -5.9155, "lon": -35.263}
        assert record["attachments"][0]["filename"] == "anexo_1.jpg"
        assert record["attachments"][0]["data"] == JPEG
        assert (record["sla_deadline"] - record["created_at"]).days == 1

    @pytest.mark.asyncio
    async def test_listeners_are_notified(self, desk, stash):
        created = []
        desk.subscribe(created.append)
        ref = await desk.create_ticket(draft_with(stash))
        assert [r["protocol"] for r in created] == [ref.protocol]

    @pytest.mark.asyncio
    async def test_unknown_category_goes_to_outros(self, desk, stash):
        ref = await desk.create_ticket(draft_with(stash, category=None))
        assert desk.get(ref.protocol)["category"] == "Outros Serviços"

    @pytest.mark.asyncio
    async def test_requires_a_photo(self, desk, stash):
        with pytest.raises(MaterializationError, match="photo"):
            await desk.create_ticket(draft_with(stash, attachments=[]))

    @pytest.mark.asyncio
    async def test_requires_a_description(self, desk, stash):
        with pytest.raises(MaterializationError, match="description"):
            await desk.create_ticket(draft_with(stash, description="  "))

    @pytest.mark.asyncio
    async def test_missing_bytes_fail(self, desk, stash):
        draft = draft_with(stash)
        stash.discard(draft.attachments)
        with pytest.raises(MaterializationError, match="no longer available"):
            await desk.create_ticket(draft)
        assert desk.all() == []


class TestLookupTicket:
    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, desk, stash):
        ref = await desk.create_ticket(draft_with(stash))
        status = await desk.lookup_ticket(ref.protocol.lower())
        assert status.protocol == ref.protocol
        assert status.title.startswith("Poste apagado")
        assert status.history[0].action == "CREATED"

    @pytest.mark.asyncio
    async def test_unknown_protocol(self, desk):
        assert await desk.lookup_ticket("202601-ZZZZZZ") is None

    @pytest.mark.asyncio
    async def test_resolution_shows_in_status(self, desk, stash):
        ref = await desk.create_ticket(draft_with(stash))
        desk.update_state(ref.protocol, TicketState.RESOLVED, actor="Equipe SEMSUR")
        status = await desk.lookup_ticket(ref.protocol)
        assert status.state == TicketState.RESOLVED
        assert status.resolved_at is not None
        assert status.history[0].action == "RESOLVED"

    def test_update_unknown_ticket(self, desk):
        with pytest.raises(TicketDeskError):
            desk.update_state("202601-ZZZZZZ", TicketState.CLOSED)


class TestAttachmentStash:
    def test_put_get_discard(self, stash):
        ref = stash.put(JPEG, "image", "image/jpeg")
        assert ref.size == len(JPEG)
        assert stash.get(ref) == JPEG
        stash.discard([ref, ref])
        assert ref not in stash
        assert stash.get(ref) is None

    @pytest.mark.parametrize("mime, ext", [
        ("image/jpeg", ".jpg"),
        ("audio/ogg; codecs=opus", ".ogg"),
        ("VIDEO/MP4", ".mp4"),
        ("application/zip", ".bin"),
    ])
    def test_extension_for(self, mime, ext):
        assert extension_for(mime) == ext
