"""Tests for reply wording helpers."""

from datetime import datetime, timedelta

import pytest

from demand_intake.prompts import reply_templates as replies
from demand_intake.schemas.ticket_schema import TicketHistoryEntry, TicketState, TicketStatus
from tests.conftest import NOW


class TestVariants:
    def test_select_variant_is_deterministic(self):
        options = ["a", "b", "c"]
        assert replies.select_variant(options, "photo", 4) == replies.select_variant(options, "photo", 4)

    def test_consecutive_seeds_rotate(self):
        options = ["a", "b", "c"]
        picks = [replies.select_variant(options, "photo", seed) for seed in range(3)]
        assert sorted(picks) == options

    def test_empty_options_raise(self):
        with pytest.raises(ValueError):
            replies.select_variant([], "photo", 0)

    def test_missing_item_prompt_comes_from_pool(self):
        assert replies.missing_item_prompt("location", 7) in replies.MISSING_ITEM_PROMPTS["location"]


class TestGreeting:
    @pytest.mark.parametrize("hour, period", [
        (5, "Bom dia"), (11, "Bom dia"), (12, "Boa tarde"), (17, "Boa tarde"), (18, "Boa noite"), (2, "Boa noite"),
    ])
    def test_day_period(self, hour, period):
        assert replies.day_period(datetime(2026, 1, 15, hour)) == period

    def test_greeting_with_name(self):
        text = replies.greeting(datetime(2026, 1, 15, 20), "Maria")
        assert text == "Boa noite, Maria! Aqui é a Luma, da SEMSUR de Parnamirim."


class TestTicketMessages:
    def test_created_lists_protocol_and_place(self):
        text = replies.ticket_created("202601-ABC123", "Tapa-buraco", "Rua A, 10")
        assert "*Protocolo:* 202601-ABC123" in text
        assert "*Local:* Rua A, 10" in text

    def test_created_without_address(self):
        assert "*Local:*" not in replies.ticket_created("202601-ABC123", "Tapa-buraco", None)

    def test_status_shows_latest_history(self):
        status = TicketStatus(
            protocol="202601-ABC123",
            state=TicketState.RESOLVED,
            title="Poste apagado",
            neighborhood="Centro",
            secretariat="SEMSUR",
            created_at=NOW,
            resolved_at=NOW + timedelta(days=1),
            history=[
                TicketHistoryEntry(at=NOW + timedelta(days=1), action="RESOLVED", actor="Equipe"),
                TicketHistoryEntry(at=NOW, action="CREATED"),
            ],
        )
        text = replies.ticket_status(status)
        assert "*Local:* Centro" in text
        assert "*Status:* Resolvida" in text
        assert "*Resolvida em:* 16/01/2026" in text
        assert "- 16/01/2026: Marcada como resolvida (Equipe)" in text
        assert "- 15/01/2026: Demanda registrada" in text

    def test_not_found_echoes_protocol(self):
        assert "*202601-ZZZZZZ*" in replies.ticket_not_found("202601-ZZZZZZ")


class TestSmallReplies:
    def test_location_ack_adds_neighborhood(self):
        assert replies.location_ack("Rua A, 10", "Centro") == "Localização registrada: Rua A, 10 (Centro)."

    def test_location_ack_without_address(self):
        assert replies.location_ack(None, None) == "Localização registrada!"

    def test_document_reply_quotes_caption(self):
        assert 'documento "boleto"' in replies.document_reply("boleto")
        assert "Recebi o documento." in replies.document_reply(None)
