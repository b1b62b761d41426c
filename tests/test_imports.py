"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""

from datetime import datetime, timezone


class TestSchemaImports:
    def test_import_event_schema(self):
        from demand_intake.schemas.event_schema import EventKind, InboundEvent
        assert EventKind.LOCATION == "location"
        assert InboundEvent is not None

    def test_import_session_schema(self):
        from demand_intake.schemas.session_schema import Session, Stage
        session = Session.start("5584999990000", datetime(2026, 1, 15, tzinfo=timezone.utc))
        assert session.stage == Stage.IDLE
        assert session.slots.photos == []

    def test_import_ticket_schema(self):
        from demand_intake.schemas.ticket_schema import TicketDraft, TicketState
        assert TicketState.OPEN == "OPEN"
        assert TicketDraft is not None


class TestConversationImports:
    def test_package_reexports(self):
        from demand_intake.conversation import (
            ConversationStateMachine, RepetitionGuardrail, SlotManager, SlotName, TurnOutcome,
        )
        assert SlotName.PHOTO == "photo"
        assert RepetitionGuardrail().threshold > 0
        assert callable(SlotManager)
        assert TurnOutcome is not None
        assert len(ConversationStateMachine.TRANSITIONS) > 10


class TestToolImports:
    def test_import_categories(self):
        from demand_intake.tools.categories import CATEGORY_CATALOG, DEFAULT_CATEGORY_NAME
        assert CATEGORY_CATALOG["outros"]["name"] == DEFAULT_CATEGORY_NAME

    def test_import_tickets(self):
        from demand_intake.tools.tickets import InMemoryTicketDesk, MaterializationError
        assert callable(InMemoryTicketDesk)
        assert issubclass(MaterializationError, Exception)


class TestConfigImport:
    def test_import_config(self):
        from demand_intake.config import settings
        assert settings.bot.persona_name
        assert settings.session.ttl_minutes > settings.session.idle_warning_minutes
        assert 0 < settings.guard.similarity_threshold <= 1


class TestEntryPoints:
    def test_engine_imports(self):
        from demand_intake.engine import IdleSweeper, IntakeEngine
        assert IntakeEngine is not None
        assert IdleSweeper is not None

    def test_main_imports(self):
        import main
        assert callable(main._build_engine)


class TestConsoleDemo:
    def test_console_session_starts_empty(self):
        from console_demo import ConsoleSession
        session = ConsoleSession()
        assert session.desk.all() == []
        assert session.last_protocol is None

    def test_report_scenario_creates_ticket(self):
        from console_demo import ConsoleSession
        session = ConsoleSession()
        session.run_scenario("report")
        assert len(session.desk.all()) == 1
        assert session.last_protocol == session.desk.all()[0]["protocol"]

    def test_cancel_scenario_creates_nothing(self):
        from console_demo import ConsoleSession
        from demand_intake.prompts.reply_templates import CANCELLED
        session = ConsoleSession()
        session.run_scenario("cancel")
        assert session.desk.all() == []
        assert session.dispatcher.sent[-1].text == CANCELLED
