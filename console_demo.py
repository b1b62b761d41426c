"""
Offline console demo: runs WhatsApp intake conversations without any API keys.

Drives the real intake engine (state machine, slot manager, anti-repetition
guard, in-memory session store and ticket desk) with the keyword fallback
extractor. No AI, no messaging provider, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario report
    python console_demo.py --scenario status
"""

import argparse
import asyncio
from typing import Optional

from demand_intake.channels.outbound import RecordingDispatcher
from demand_intake.channels.payloads import location_payload, media_payload, text_payload
from demand_intake.config import settings
from demand_intake.engine import IntakeEngine
from demand_intake.extraction.slot_extractor import SlotExtractor
from demand_intake.sessions.store import InMemorySessionStore
from demand_intake.tools.attachments import AttachmentStash
from demand_intake.tools.tickets import InMemoryTicketDesk, TicketRecord

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

SAMPLE_IMAGE = b"\xff\xd8\xff\xe0" + b"demo-photo" * 32
SAMPLE_VIDEO = b"\x00\x00\x00\x18ftypmp4" + b"demo-video" * 32


class ConsoleSession:
    """Plays a citizen chatting with the intake engine in the terminal."""

    SENDER_ID = "5584999990000"
    PUSH_NAME = "Maria"

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[tuple]] = {
        "report": [
            ("text", "Oi, tem um buraco enorme na Rua das Acácias, perto da escola"),
            ("photo", None),
        ],
        "photo_first": [
            ("photo", "Poste apagado faz uma semana na Rua das Flores, 120"),
        ],
        "location": [
            ("text", "boa tarde"),
            ("text", "o mato tá muito alto na praça do bairro, ninguém vem cortar"),
            ("location", -5.9155, -35.2630),
            ("photo", None),
        ],
        "status": [
            ("text", "Tem lixo acumulado na Avenida Brasil há dias"),
            ("photo", None),
            ("text", "quero consultar meu protocolo"),
            ("text", "{last_protocol}"),
        ],
        "cancel": [
            ("text", "tem um vazamento de esgoto na Rua Tenente Medeiros"),
            ("text", "cancelar"),
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self) -> None:
        self.stash = AttachmentStash()
        self.desk = InMemoryTicketDesk(self.stash)
        self.store = InMemorySessionStore()
        self.dispatcher = RecordingDispatcher()
        self.engine = IntakeEngine(
            self.store, SlotExtractor(), self.desk, self.dispatcher, self.stash, enabled=True,
        )
        self.last_protocol: Optional[str] = None
        self.desk.subscribe(self._on_ticket)

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.bot.persona_name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _on_ticket(self, record: TicketRecord) -> None:
        self.last_protocol = record["protocol"]
        self.system_log(
            f"Ticket {record['protocol']} created: {record['category']} "
            f"({len(record['attachments'])} attachment(s), SLA {record['sla_deadline']:%d/%m})"
        )

    def _payload(self, step: tuple) -> dict:
        kind = step[0]
        if kind == "photo":
            return media_payload(self.SENDER_ID, "image", SAMPLE_IMAGE, "image/jpeg",
                                 caption=step[1], push_name=self.PUSH_NAME)
        if kind == "video":
            return media_payload(self.SENDER_ID, "video", SAMPLE_VIDEO, "video/mp4",
                                 caption=step[1], push_name=self.PUSH_NAME)
        if kind == "location":
            return location_payload(self.SENDER_ID, step[1], step[2], push_name=self.PUSH_NAME)
        text = step[1].replace("{last_protocol}", self.last_protocol or "202601-XXXXXX")
        return text_payload(self.SENDER_ID, text, push_name=self.PUSH_NAME)

    def _describe(self, step: tuple) -> str:
        if step[0] == "photo":
            return f"[foto]{' ' + step[1] if step[1] else ''}"
        if step[0] == "video":
            return f"[vídeo]{' ' + step[1] if step[1] else ''}"
        if step[0] == "location":
            return f"[localização {step[1]}, {step[2]}]"
        return step[1].replace("{last_protocol}", self.last_protocol or "202601-XXXXXX")

    async def send(self, step: tuple) -> None:
        print(f"\n{BLUE}[{self.PUSH_NAME}] {RESET}{self._describe(step)}")
        already_sent = len(self.dispatcher.sent)
        await self.engine.handle_inbound(self._payload(step))
        for message in self.dispatcher.sent[already_sent:]:
            self.agent_say(message.text)
        session = await self.store.get(self.SENDER_ID)
        if session is None:
            self.system_log("Session: evicted")
        else:
            filled = [name for name, value in (
                ("description", session.slots.description),
                ("location", session.slots.address_text or session.slots.coordinates),
                ("photo", session.slots.photos),
            ) if value]
            self.system_log(f"Stage: {session.stage.value} | Slots: {filled or '-'}")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  DEMAND INTAKE - Scenario: {scenario}{RESET}")
        print(f"{BOLD}  {settings.bot.secretariat} - {settings.bot.city}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        async def play() -> None:
            for step in steps:
                await self.send(step)

        asyncio.run(play())
        self._summary(f"Scenario '{scenario}' complete.")

    def run(self) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  DEMAND INTAKE - Console Demo{RESET}")
        print(f"{BOLD}  {settings.bot.secretariat} - {settings.bot.city}{RESET}")
        print(f"{BOLD}  /foto [legenda], /video [legenda], /local <lat> <lon>{RESET}")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        asyncio.run(self._interactive())
        self._summary("Session ended.")

    async def _interactive(self) -> None:
        while True:
            user_input = input(f"\n{BLUE}[{self.PUSH_NAME}] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                return
            if len(user_input) > self.MAX_INPUT_LENGTH:
                print(f"{YELLOW}Message too long for the demo, keep it under "
                      f"{self.MAX_INPUT_LENGTH} characters.{RESET}")
                continue
            step = self._parse(user_input)
            if step is None:
                print(f"{YELLOW}Usage: /local <lat> <lon>{RESET}")
                continue
            await self.send(step)

    def _parse(self, user_input: str) -> Optional[tuple]:
        command, _, rest = user_input.partition(" ")
        if command == "/foto":
            return ("photo", rest.strip() or None)
        if command == "/video":
            return ("video", rest.strip() or None)
        if command == "/local":
            try:
                lat, lon = (float(v) for v in rest.split())
            except ValueError:
                return None
            return ("location", lat, lon)
        return ("text", user_input)

    def _summary(self, title: str) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {title}{RESET}")
        print(f"{DIM}  Tickets created: {len(self.desk.all())}{RESET}")
        print(f"{DIM}  Messages sent: {len(self.dispatcher.sent)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
