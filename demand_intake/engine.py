"""
Intake engine: runs citizen turns against the conversation core.

Every inbound payload is normalized, deduplicated by provider message id
and then processed under its sender's gate, so turns from one citizen are
applied strictly in receipt order while different citizens run in
parallel. Only AI extraction, media download, geocoding, ticket desk calls
and outbound dispatch suspend a turn.

Usage:
    engine = IntakeEngine(store, SlotExtractor(GeminiBackend()), desk, dispatcher, stash)
    await engine.handle_inbound(webhook_payload)
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from demand_intake.channels.normalizer import MediaDownloader, NormalizationError, normalize
from demand_intake.channels.outbound import DeliveryError, OutboundDispatcher
from demand_intake.config import settings
from demand_intake.conversation import intents
from demand_intake.conversation import state_machine as sm
from demand_intake.extraction.ai_backend import AIError
from demand_intake.extraction.slot_extractor import SlotExtractor, summarize_context
from demand_intake.logging_context import get_sender_logger, set_sender_id
from demand_intake.prompts import reply_templates as replies
from demand_intake.schemas.event_schema import EventKind, InboundEvent
from demand_intake.schemas.extraction_schema import ExtractionResult, GeoResult
from demand_intake.schemas.session_schema import AttachmentRef, Session
from demand_intake.sessions.gates import SenderGate, SenderGates
from demand_intake.sessions.seen import SeenMessages
from demand_intake.sessions.store import SessionStore
from demand_intake.tools.attachments import AttachmentStash
from demand_intake.tools.geocoding import GeoError, ReverseGeocoder
from demand_intake.tools.tickets import TicketDesk, TicketDeskError

logger = get_sender_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IntakeEngine:
    """Wires the session store, extractor, ticket desk and dispatcher together."""

    def __init__(
        self,
        store: SessionStore,
        extractor: SlotExtractor,
        desk: TicketDesk,
        dispatcher: OutboundDispatcher,
        stash: AttachmentStash,
        geocoder: Optional[ReverseGeocoder] = None,
        downloader: Optional[MediaDownloader] = None,
        gates: Optional[SenderGates] = None,
        seen: Optional[SeenMessages] = None,
        clock: Callable[[], datetime] = utc_now,
        extraction_timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.desk = desk
        self.dispatcher = dispatcher
        self.stash = stash
        self.geocoder = geocoder
        self.downloader = downloader
        self.gates = gates or SenderGates()
        self.seen = seen or SeenMessages()
        self.clock = clock
        self.extraction_timeout = extraction_timeout or settings.ai.timeout_sec
        self.enabled = settings.bot.enabled if enabled is None else enabled
        self._tasks: set[asyncio.Task] = set()

    # --- Entry points ---

    def submit(self, raw_payload: dict[str, Any]) -> asyncio.Task:
        """Schedule a payload without waiting for its turn to finish."""
        task = asyncio.create_task(self.handle_inbound(raw_payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every submitted payload to be processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def handle_inbound(self, raw_payload: dict[str, Any]) -> None:
        if not self.enabled:
            logger.debug("Bot disabled, ignoring inbound payload")
            return
        try:
            event = normalize(raw_payload)
        except NormalizationError as exc:
            if exc.ignorable or not exc.sender_id:
                logger.debug("Payload dropped: %s", exc)
                return
            set_sender_id(exc.sender_id)
            logger.warning("Could not normalize payload: %s", exc)
            await self.deliver(exc.sender_id, [replies.UNSUPPORTED])
            return

        if self.seen.check_and_add(event.provider_message_id):
            logger.info("Duplicate delivery of %s dropped", event.provider_message_id)
            return
        await self.handle_event(event)

    async def handle_event(self, event: InboundEvent) -> None:
        """Run one normalized event. The sender's gate is entered before any await."""
        set_sender_id(event.sender_id)
        if event.kind == EventKind.TEXT and intents.is_cancel(event.text or ""):
            await self._cancel(event.sender_id)
            return

        gate, epoch = self.gates.enter(event.sender_id)
        try:
            async with gate.lock:
                if gate.epoch != epoch:
                    logger.info("Message %s dropped after cancel", event.provider_message_id)
                    return
                await self._run_turn(event, gate, epoch)
        finally:
            self.gates.leave(event.sender_id, gate)

    # --- Turn internals ---

    async def _cancel(self, sender_id: str) -> None:
        gate, _ = self.gates.enter(sender_id)
        try:
            self.gates.cancel(sender_id)
            async with gate.lock:
                session = await self.store.get(sender_id)
                if session is not None:
                    outcome = sm.cancel(session)
                    await self.store.delete(sender_id)
                    self.stash.discard(outcome.discarded)
                    logger.info("Session cancelled by citizen")
                await self.deliver(sender_id, [replies.CANCELLED])
        finally:
            self.gates.leave(sender_id, gate)

    async def _run_turn(self, event: InboundEvent, gate: SenderGate, epoch: int) -> None:
        sender_id = event.sender_id
        now = self.clock()
        photo: Optional[AttachmentRef] = None
        as_audio = event.kind == EventKind.TEXT and intents.wants_audio_reply(event.text or "")
        try:
            if event.carries_media and event.media_bytes is None and self.downloader is not None:
                event = await self.downloader.fetch(event)

            start = sm.begin_turn(await self.store.get(sender_id), event, now)

            extraction: Optional[ExtractionResult] = None
            if sm.needs_extraction(start.session, event):
                extraction = await self._extract(gate, event, start.session)
                if gate.epoch != epoch:
                    logger.info("Cancelled during extraction, discarding turn")
                    return

            geo = await self._geocode(event)
            if event.is_visual and event.media_bytes is not None and not sm.video_too_large(event):
                photo = self.stash.put(
                    event.media_bytes, event.kind.value, event.mime_type or "application/octet-stream"
                )
            if gate.epoch != epoch:
                self.stash.discard([photo] if photo else [])
                return

            outcome = sm.step(start.session, event, sm.Observation(extraction, geo, photo), now)
            outcome.discarded = start.discarded + outcome.discarded
            outcome = await self._perform(outcome)

            texts = [
                sm.record_reply(outcome.session, notice, dedupe=False)
                for notice in start.notices
            ]
            texts += [
                sm.record_reply(outcome.session, r.text, r.situation, r.dedupe)
                for r in outcome.replies
            ]
            await self._commit(outcome, photo)
            logger.debug("Turn trace: %s", " -> ".join(outcome.trace))
        except Exception:
            logger.exception("Turn failed for message %s", event.provider_message_id)
            if photo is not None:
                self.stash.discard([photo])
            texts = [replies.GENERIC_FAILURE]
            as_audio = False
        await self.deliver(sender_id, texts, as_audio=as_audio)

    async def _extract(self, gate: SenderGate, event: InboundEvent, session: Session) -> ExtractionResult:
        task = asyncio.create_task(
            self.extractor.analyze_event(event, summarize_context(session))
        )
        self.gates.track(gate, task)
        done, _ = await asyncio.wait({task}, timeout=self.extraction_timeout)
        if task in done:
            if task.cancelled():
                return self.extractor.fallback_for(event)
            return task.result()
        task.cancel()
        logger.warning(
            "Extraction timed out after %ss, using fallback", self.extraction_timeout
        )
        return self.extractor.fallback_for(event)

    async def _geocode(self, event: InboundEvent) -> Optional[GeoResult]:
        if self.geocoder is None or event.kind != EventKind.LOCATION or not event.has_coordinates:
            return None
        try:
            return await self.geocoder.reverse_geocode(event.lat, event.lon)
        except GeoError as exc:
            logger.warning("Reverse geocoding failed: %s", exc)
            return None

    async def _perform(self, outcome: sm.TurnOutcome) -> sm.TurnOutcome:
        """Call the ticket desk for a pending materialization or lookup."""
        materialize = outcome.materialize
        if materialize is not None:
            try:
                ref = await self.desk.create_ticket(materialize.draft)
            except TicketDeskError as exc:
                logger.error("Ticket creation failed: %s", exc)
                return outcome.resolve(
                    sm.on_materialization_failed(outcome.session, materialize.preface)
                )
            except Exception:
                logger.exception("Unexpected error creating ticket, keeping slots for retry")
                return outcome.resolve(
                    sm.on_materialization_failed(outcome.session, materialize.preface)
                )
            logger.info("Ticket %s created", ref.protocol)
            return outcome.resolve(sm.on_ticket_created(outcome.session, ref, materialize.preface))

        lookup = outcome.lookup
        if lookup is not None:
            try:
                status = await self.desk.lookup_ticket(lookup.protocol)
            except TicketDeskError as exc:
                logger.error("Ticket lookup for %s failed: %s", lookup.protocol, exc)
                return outcome.resolve(sm.on_ticket_status(
                    outcome.session, lookup.protocol, None, failed=True, preface=lookup.preface
                ))
            return outcome.resolve(sm.on_ticket_status(
                outcome.session, lookup.protocol, status, preface=lookup.preface
            ))
        return outcome

    async def _commit(self, outcome: sm.TurnOutcome, photo: Optional[AttachmentRef]) -> None:
        session = outcome.session
        drop = list(outcome.discarded)
        if photo is not None and photo not in session.slots.photos:
            drop.append(photo)
        if outcome.evicted:
            await self.store.delete(session.sender_id)
            drop += session.slots.photos
        else:
            await self.store.put(session)
        self.stash.discard(drop)

    async def deliver(self, sender_id: str, texts: list[str], as_audio: bool = False) -> None:
        """Send texts in order. A delivery failure is logged and stops the rest.

        With ``as_audio`` the texts are first tried as a single voice note;
        any failure there falls back to sending them as text.
        """
        if as_audio and texts and await self._deliver_audio(sender_id, texts):
            return
        for index, text in enumerate(texts):
            try:
                await self.dispatcher.send_text(sender_id, text)
            except DeliveryError as exc:
                logger.error(
                    "Delivery failed, %d of %d message(s) not sent: %s",
                    len(texts) - index, len(texts), exc,
                )
                return

    async def _deliver_audio(self, sender_id: str, texts: list[str]) -> bool:
        backend = self.extractor.backend
        if backend is None or not settings.ai.audio_replies:
            return False
        spoken = "\n\n".join(texts).replace("*", "")
        try:
            speech = await backend.synthesize_speech(spoken)
            await self.dispatcher.send_media(sender_id, speech.data, speech.mime_type)
        except (AIError, DeliveryError) as exc:
            logger.warning("Audio reply failed, sending text instead: %s", exc)
            return False
        except Exception:
            logger.exception("Unexpected error sending audio reply, sending text instead")
            return False
        logger.info("Reply sent as audio (%d bytes)", len(speech.data))
        return True


@dataclass
class SweepReport:
    evicted: int = 0
    warned: int = 0


class IdleSweeper:
    """
    Background housekeeping for sessions.

    Each pass evicts sessions past the hard TTL and sends the one-time idle
    warning to citizens who stopped answering mid-flow. Senders with a turn
    running or queued are left alone.
    """

    def __init__(self, engine: IntakeEngine, interval_sec: Optional[float] = None) -> None:
        self.engine = engine
        self.interval_sec = interval_sec or settings.session.sweep_interval_sec
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        engine = self.engine
        now = now or engine.clock()
        report = SweepReport()

        expired = await engine.store.sweep_expired(
            now, skip=engine.gates.busy(), guard=engine.gates.hold
        )
        for session in expired:
            engine.stash.discard(session.slots.photos)
        report.evicted = len(expired)

        for sender_id in await engine.store.keys():
            if sender_id in engine.gates.busy():
                continue
            if await self._warn(sender_id, now):
                report.warned += 1
        if report.evicted or report.warned:
            logger.info("Idle sweep: %d evicted, %d warned", report.evicted, report.warned)
        return report

    async def _warn(self, sender_id: str, now: datetime) -> bool:
        engine = self.engine
        async with engine.gates.hold(sender_id):
            session = await engine.store.get(sender_id)
            if session is None or session.warned_idle or not sm.in_progress(session):
                return False
            if sm.idle_verdict(session, now) != sm.IdleVerdict.WARN:
                return False
            session = sm.mark_warned(session)
            text = sm.record_reply(session, replies.IDLE_WARNING, dedupe=False)
            await engine.store.put(session)
            set_sender_id(sender_id)
            await engine.deliver(sender_id, [text])
            return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Idle sweep failed")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
