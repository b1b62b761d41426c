"""
Demand intake entry point.

Console mode runs the offline demo. Replay mode feeds a JSON-lines file of
provider webhook payloads through a fully configured engine (Gemini when
GEMINI_API_KEY is set, Nominatim geocoding, the configured session store)
and prints what would have been sent back.

Usage:
    Console mode: python main.py console
    Replay mode:  python main.py replay payloads.jsonl
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from demand_intake.config import settings

logger = logging.getLogger(__name__)


def _build_engine():
    """Build an IntakeEngine wired to the configured collaborators."""
    from demand_intake.channels.normalizer import MediaDownloader
    from demand_intake.channels.outbound import RecordingDispatcher, RetryingDispatcher
    from demand_intake.engine import IntakeEngine
    from demand_intake.extraction.ai_backend import GeminiBackend
    from demand_intake.extraction.slot_extractor import SlotExtractor
    from demand_intake.sessions.store import build_store
    from demand_intake.tools.attachments import AttachmentStash
    from demand_intake.tools.geocoding import ReverseGeocoder
    from demand_intake.tools.tickets import InMemoryTicketDesk

    backend = GeminiBackend() if settings.ai.api_key else None
    if backend is None:
        logger.warning("GEMINI_API_KEY not set, using the keyword fallback extractor")
    stash = AttachmentStash()
    recorder = RecordingDispatcher()
    engine = IntakeEngine(
        store=build_store(),
        extractor=SlotExtractor(backend),
        desk=InMemoryTicketDesk(stash),
        dispatcher=RetryingDispatcher(recorder),
        stash=stash,
        geocoder=ReverseGeocoder() if settings.geo.enabled else None,
        downloader=MediaDownloader(),
    )
    return engine, recorder, backend


async def _replay(path: Path) -> None:
    """Submit every payload in a JSON-lines file and wait for all turns.

    The idle sweeper runs alongside the replay so warnings and evictions
    happen exactly as they would in a long-running process.
    """
    from demand_intake.engine import IdleSweeper

    engine, recorder, backend = _build_engine()
    sweeper = IdleSweeper(engine)
    sweeper.start()
    count = 0
    try:
        with path.open(encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    logger.error("Skipping line %d: %s", line_no, exc)
                    continue
                engine.submit(payload)
                count += 1
        await engine.drain()
    finally:
        await sweeper.stop()
    if backend is not None:
        await backend.aclose()
    close = getattr(engine.store, "close", None)
    if close is not None:
        await close()

    logger.info("Replayed %d payload(s), %d outbound message(s)", count, len(recorder.sent))
    for message in recorder.sent:
        body = f"[{message.mime_type}] {message.text}" if message.mime_type else message.text
        print(f"-> {message.sender_id}: {body}\n")


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 2 and sys.argv[1] == "replay":
        asyncio.run(_replay(Path(sys.argv[2])))
    elif len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        print(__doc__)
        sys.exit(1)
