"""
Finite state machine for the demand intake conversation.

A session moves Idle -> CollectingDescription -> CollectingLocation ->
CollectingPhoto -> AwaitingConfirmation -> Closed, with side branches for
status queries (ConsultingTicket), cancellation and idle resets. Every stage
change goes through an explicit transition table.

The turn function is pure: ``step`` takes a session, a normalized event and
whatever the engine already observed for it (extraction, reverse geocoding,
stashed photo) and returns the next session plus a list of effects. The
engine performs the effects and feeds results back through the
``on_ticket_created``, ``on_materialization_failed`` and ``on_ticket_status``
follow-ups. Nothing here touches the network or the store.

Usage:
    start = begin_turn(session, event, now)
    outcome = step(start.session, event, Observation(extraction=result), now)
    if outcome.materialize:
        ...  # call the ticket desk, then on_ticket_created(...)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo

from demand_intake.config import settings
from demand_intake.conversation import guardrails, intents
from demand_intake.conversation.slot_manager import SlotManager, SlotName
from demand_intake.prompts import reply_templates as replies
from demand_intake.schemas.event_schema import EventKind, InboundEvent
from demand_intake.schemas.extraction_schema import ExtractionResult, GeoResult
from demand_intake.schemas.session_schema import (
    AttachmentRef,
    LogEntry,
    Role,
    Session,
    Stage,
)
from demand_intake.schemas.ticket_schema import TicketDraft, TicketRef, TicketStatus
from demand_intake.sessions.store import is_expired
from demand_intake.tools.categories import (
    extract_street,
    find_neighborhood,
    has_demand_signal,
    names_a_problem,
    resolve_category,
)

logger = logging.getLogger(__name__)

IDLE_PROMPT = "Em que posso te ajudar hoje?"
MIN_DESCRIPTION_LENGTH = 4


class TransitionTrigger(str, Enum):
    """Events that cause stage transitions."""
    GREETING = "greeting"
    DEMAND_SIGNAL = "demand_signal"
    STATUS_QUERY = "status_query"
    DESCRIPTION_COLLECTED = "description_collected"
    LOCATION_COLLECTED = "location_collected"
    PHOTO_COLLECTED = "photo_collected"
    SLOTS_COMPLETE = "slots_complete"
    CONFIRMED = "confirmed"
    TICKET_CREATED = "ticket_created"
    MATERIALIZATION_FAILED = "materialization_failed"
    DECLINED = "declined"
    AMBIGUOUS_ANSWER = "ambiguous_answer"
    PROTOCOL_ANSWERED = "protocol_answered"
    LOOKUP_FAILED = "lookup_failed"
    PROTOCOL_MISSING = "protocol_missing"
    CANCELLED = "cancelled"
    IDLE_RESET = "idle_reset"


@dataclass
class Transition:
    """A single valid stage transition. ``from_state=None`` matches any stage."""
    from_state: Optional[Stage]
    to_state: Stage
    trigger: TransitionTrigger


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current stage."""


class IdleVerdict(str, Enum):
    ACTIVE = "active"
    WARN = "warn"
    EXPIRED = "expired"


class ConversationStateMachine:
    """
    Drives ``session.stage`` through the transition table.

    Any attempt to move the session along an edge that is not in the table
    is rejected with the list of triggers valid from the current stage.
    """

    TRANSITIONS: list[Transition] = [
        # --- Idle routing ---
        Transition(Stage.IDLE, Stage.IDLE, TransitionTrigger.GREETING),
        Transition(Stage.IDLE, Stage.COLLECTING_DESCRIPTION, TransitionTrigger.DEMAND_SIGNAL),
        Transition(Stage.IDLE, Stage.CONSULTING_TICKET, TransitionTrigger.STATUS_QUERY),

        # --- Slot collection ---
        Transition(Stage.COLLECTING_DESCRIPTION, Stage.COLLECTING_LOCATION,
                   TransitionTrigger.DESCRIPTION_COLLECTED),
        Transition(Stage.COLLECTING_LOCATION, Stage.COLLECTING_PHOTO,
                   TransitionTrigger.LOCATION_COLLECTED),
        Transition(Stage.COLLECTING_PHOTO, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.PHOTO_COLLECTED),

        # --- Eager completion ---
        Transition(Stage.COLLECTING_DESCRIPTION, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.SLOTS_COMPLETE),
        Transition(Stage.COLLECTING_LOCATION, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.SLOTS_COMPLETE),
        Transition(Stage.COLLECTING_PHOTO, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.SLOTS_COMPLETE),

        # --- Confirmation gate ---
        Transition(Stage.AWAITING_CONFIRMATION, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.CONFIRMED),
        Transition(Stage.AWAITING_CONFIRMATION, Stage.CLOSED,
                   TransitionTrigger.TICKET_CREATED),
        Transition(Stage.AWAITING_CONFIRMATION, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.MATERIALIZATION_FAILED),
        Transition(Stage.AWAITING_CONFIRMATION, Stage.IDLE,
                   TransitionTrigger.DECLINED),
        Transition(Stage.AWAITING_CONFIRMATION, Stage.AWAITING_CONFIRMATION,
                   TransitionTrigger.AMBIGUOUS_ANSWER),

        # --- Status queries ---
        Transition(Stage.CONSULTING_TICKET, Stage.IDLE, TransitionTrigger.PROTOCOL_ANSWERED),
        Transition(Stage.CONSULTING_TICKET, Stage.CONSULTING_TICKET,
                   TransitionTrigger.LOOKUP_FAILED),
        Transition(Stage.CONSULTING_TICKET, Stage.CONSULTING_TICKET,
                   TransitionTrigger.PROTOCOL_MISSING),

        # --- Any stage ---
        Transition(None, Stage.CLOSED, TransitionTrigger.CANCELLED),
        Transition(None, Stage.IDLE, TransitionTrigger.IDLE_RESET),
    ]

    def __init__(self, session: Session) -> None:
        self.session = session
        self._trace: list[Stage] = [session.stage]

    @property
    def current_state(self) -> Stage:
        return self.session.stage

    def transition(self, trigger: TransitionTrigger) -> Stage:
        """
        Execute a stage transition on the wrapped session.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.trigger != trigger:
                continue
            if t.from_state is not None and t.from_state != self.session.stage:
                continue
            old_state = self.session.stage
            self.session.stage = t.to_state
            self._trace.append(t.to_state)
            logger.debug(
                "Stage transition: %s -> %s (trigger: %s)",
                old_state.value, t.to_state.value, trigger.value,
            )
            return t.to_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self.session.stage.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current stage."""
        return [
            t.trigger for t in self.TRANSITIONS
            if t.from_state is None or t.from_state == self.session.stage
        ]

    def get_state_trace(self) -> list[str]:
        """Ordered stage names visited through this machine."""
        return [stage.value for stage in self._trace]

    def is_terminal(self) -> bool:
        return self.session.stage == Stage.CLOSED


# --- Effects ---

@dataclass
class SendReply:
    text: str
    situation: str = replies.GENERAL
    dedupe: bool = True


@dataclass
class MaterializeTicket:
    draft: TicketDraft
    preface: Optional[str] = None


@dataclass
class LookupTicket:
    protocol: str
    preface: Optional[str] = None


@dataclass
class EvictSession:
    reason: str


Effect = Union[SendReply, MaterializeTicket, LookupTicket, EvictSession]


@dataclass
class Observation:
    """What the engine learned about an event before stepping the session."""
    extraction: Optional[ExtractionResult] = None
    geo: Optional[GeoResult] = None
    photo: Optional[AttachmentRef] = None


@dataclass
class TurnOutcome:
    """Next session plus the effects the engine must perform, in order.

    ``discarded`` lists attachments the session no longer references and
    whose bytes can be dropped from the stash.
    """
    session: Session
    effects: list[Effect] = field(default_factory=list)
    discarded: list[AttachmentRef] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    def reply(self, text: str, situation: str = replies.GENERAL, dedupe: bool = True) -> None:
        self.effects.append(SendReply(text=text, situation=situation, dedupe=dedupe))

    @property
    def replies(self) -> list[SendReply]:
        return [e for e in self.effects if isinstance(e, SendReply)]

    @property
    def materialize(self) -> Optional[MaterializeTicket]:
        return next((e for e in self.effects if isinstance(e, MaterializeTicket)), None)

    @property
    def lookup(self) -> Optional[LookupTicket]:
        return next((e for e in self.effects if isinstance(e, LookupTicket)), None)

    @property
    def evicted(self) -> bool:
        return any(isinstance(e, EvictSession) for e in self.effects)

    def resolve(self, follow_up: "TurnOutcome") -> "TurnOutcome":
        """Replace the pending desk call with the effects of its follow-up."""
        kept = [e for e in self.effects if not isinstance(e, (MaterializeTicket, LookupTicket))]
        return TurnOutcome(
            session=follow_up.session,
            effects=kept + follow_up.effects,
            discarded=self.discarded + follow_up.discarded,
            trace=self.trace + follow_up.trace[1:],
        )


@dataclass
class TurnStart:
    session: Session
    notices: list[str] = field(default_factory=list)
    discarded: list[AttachmentRef] = field(default_factory=list)
    fresh: bool = False


# --- Session lifecycle ---

def _idle_for(session: Session, now: datetime) -> timedelta:
    return now - session.last_activity_at


def in_progress(session: Session) -> bool:
    """True when the citizen is in the middle of something worth warning about."""
    if session.stage != Stage.IDLE:
        return True
    slots = session.slots
    return bool(slots.description or slots.address_text or slots.coordinates or slots.photos)


def idle_verdict(session: Session, now: datetime) -> IdleVerdict:
    if is_expired(session, now):
        return IdleVerdict.EXPIRED
    if _idle_for(session, now) >= timedelta(minutes=settings.session.idle_warning_minutes):
        return IdleVerdict.WARN
    return IdleVerdict.ACTIVE


def begin_turn(session: Optional[Session], event: InboundEvent, now: datetime) -> TurnStart:
    """Resolve the session a turn runs against.

    Unknown, expired and closed sessions start over. A session idle past the
    warning threshold is reset to Idle, keeping only whether the citizen was
    already greeted; the restart is announced unless the idle warning went
    out already.
    """
    if session is None or session.stage == Stage.CLOSED or is_expired(session, now):
        discarded = list(session.slots.photos) if session else []
        return TurnStart(
            session=Session.start(event.sender_id, now, event.display_name),
            discarded=discarded,
            fresh=True,
        )

    session = session.model_copy(deep=True)
    verdict = idle_verdict(session, now)
    if verdict != IdleVerdict.WARN:
        return TurnStart(session=session)

    notices = []
    if in_progress(session) and not session.warned_idle:
        notices.append(replies.IDLE_RESTART)
    discarded = SlotManager(session.slots).reset()
    if session.stage != Stage.IDLE:
        ConversationStateMachine(session).transition(TransitionTrigger.IDLE_RESET)
    session.warned_idle = False
    logger.info("Session for %s reset after %s idle", session.sender_id, _idle_for(session, now))
    return TurnStart(session=session, notices=notices, discarded=discarded)


def mark_warned(session: Session) -> Session:
    session = session.model_copy(deep=True)
    session.warned_idle = True
    return session


def needs_extraction(session: Session, event: InboundEvent) -> bool:
    """Whether the turn wants a SlotExtractor call before stepping."""
    if not event.supported or event.kind in (EventKind.DOCUMENT, EventKind.STICKER, EventKind.LOCATION):
        return False
    text = event.text or ""
    if event.kind == EventKind.TEXT and (intents.is_cancel(text) or intents.is_menu(text)):
        return False
    if session.stage in (Stage.AWAITING_CONFIRMATION, Stage.CONSULTING_TICKET, Stage.CLOSED):
        return False
    if event.carries_media:
        if event.media_bytes is None:
            return False
        return not video_too_large(event)
    if session.stage == Stage.IDLE:
        if intents.extract_protocol(text):
            return False
        if not has_demand_signal(text) and (intents.is_status_query(text) or intents.is_greeting(text)):
            return False
    return True


def video_too_large(event: InboundEvent) -> bool:
    return (
        event.kind == EventKind.VIDEO
        and event.media_bytes is not None
        and len(event.media_bytes) > settings.media.max_video_bytes
    )


# --- Turn function ---

def _local(now: datetime) -> datetime:
    return now.astimezone(ZoneInfo(settings.bot.timezone))


def _greet_once(session: Session, now: datetime) -> Optional[str]:
    if session.greeted:
        return None
    session.greeted = True
    return replies.greeting(_local(now), session.display_name)


def _join(*parts: Optional[str], sep: str = " ") -> str:
    return sep.join(p for p in parts if p)


def _append_log(session: Session, role: Role, content: str) -> None:
    log = session.conversation_log + [LogEntry(role=role, content=content)]
    session.conversation_log = log[-settings.session.log_size:]


def _describe(event: InboundEvent) -> str:
    if event.kind == EventKind.TEXT:
        return event.text or ""
    if event.kind == EventKind.LOCATION and event.has_coordinates:
        return f"[localização {event.lat}, {event.lon}]"
    return _join(f"[{event.kind.value}]", event.caption)


def build_draft(session: Session) -> TicketDraft:
    slots = session.slots
    return TicketDraft(
        description=slots.description or "",
        category=slots.category,
        address_text=slots.address_text,
        neighborhood=slots.neighborhood,
        coordinates=slots.coordinates,
        urgency=slots.urgency,
        attachments=list(slots.photos),
        requester_channel_id=session.sender_id,
        requester_name=session.display_name,
    )


def cancel(session: Session) -> TurnOutcome:
    """Drop everything collected so far and close the session."""
    session = session.model_copy(deep=True)
    machine = ConversationStateMachine(session)
    outcome = TurnOutcome(session=session, discarded=list(session.slots.photos))
    machine.transition(TransitionTrigger.CANCELLED)
    outcome.reply(replies.CANCELLED, dedupe=False)
    outcome.effects.append(EvictSession(reason="cancelled"))
    outcome.trace = machine.get_state_trace()
    return outcome


def step(
    session: Session,
    event: InboundEvent,
    observation: Optional[Observation] = None,
    now: Optional[datetime] = None,
) -> TurnOutcome:
    """Apply one inbound event to a session. The input session is not mutated."""
    observation = observation or Observation()
    now = now or event.received_at
    text = event.text or ""

    if event.kind == EventKind.TEXT and intents.is_cancel(text):
        return cancel(session)

    session = session.model_copy(deep=True)
    session.turn_count += 1
    session.last_activity_at = now
    session.warned_idle = False
    if event.display_name:
        session.display_name = event.display_name
    _append_log(session, Role.USER, _describe(event))

    machine = ConversationStateMachine(session)
    outcome = TurnOutcome(session=session)
    seed = session.turn_count

    if not event.supported:
        outcome.reply(replies.UNSUPPORTED, dedupe=False)
    elif event.kind == EventKind.TEXT and intents.is_menu(text):
        session.greeted = True
        outcome.reply(replies.help_menu(), dedupe=False)
    elif event.kind == EventKind.STICKER:
        outcome.reply(replies.select_variant(replies.STICKER_REPLIES, "sticker", seed), dedupe=False)
    elif event.kind == EventKind.DOCUMENT:
        outcome.reply(replies.document_reply(event.caption), dedupe=False)
    elif video_too_large(event):
        outcome.reply(replies.VIDEO_TOO_LARGE, dedupe=False)
    elif event.carries_media and event.media_bytes is None:
        outcome.reply(replies.MEDIA_MISSING, dedupe=False)
    elif event.kind == EventKind.LOCATION and not event.has_coordinates:
        outcome.reply(replies.LOCATION_MISSING, dedupe=False)
    elif session.stage == Stage.IDLE:
        _on_idle(machine, outcome, event, observation, now)
    elif session.stage == Stage.AWAITING_CONFIRMATION:
        _on_confirmation(machine, outcome, event, observation)
    elif session.stage == Stage.CONSULTING_TICKET:
        _on_consulting(machine, outcome, event)
    else:
        _collect(machine, outcome, event, observation, now)

    outcome.trace = machine.get_state_trace()
    return outcome


def _on_idle(
    machine: ConversationStateMachine,
    outcome: TurnOutcome,
    event: InboundEvent,
    observation: Observation,
    now: datetime,
) -> None:
    session = machine.session
    text = event.text or ""
    if event.kind == EventKind.TEXT:
        protocol = intents.extract_protocol(text)
        if protocol:
            machine.transition(TransitionTrigger.STATUS_QUERY)
            outcome.effects.append(LookupTicket(protocol=protocol, preface=_greet_once(session, now)))
            return
        if intents.is_status_query(text) and not has_demand_signal(text):
            machine.transition(TransitionTrigger.STATUS_QUERY)
            outcome.reply(_join(_greet_once(session, now), replies.ASK_PROTOCOL), dedupe=False)
            return

    extraction = observation.extraction
    is_demand = (
        event.kind in (EventKind.IMAGE, EventKind.VIDEO, EventKind.LOCATION)
        or (event.kind == EventKind.TEXT and (has_demand_signal(text) or names_a_problem(text)))
        or (extraction is not None and extraction.is_demand and bool(extraction.description))
    )
    if is_demand:
        machine.transition(TransitionTrigger.DEMAND_SIGNAL)
        _collect(machine, outcome, event, observation, now)
        return

    machine.transition(TransitionTrigger.GREETING)
    greeting = _greet_once(session, now)
    if greeting:
        outcome.reply(_join(greeting, IDLE_PROMPT))
    elif extraction is not None and extraction.suggested_reply:
        outcome.reply(extraction.suggested_reply)
    else:
        outcome.reply(
            replies.select_variant(replies.VARIANTS[replies.GENERAL], replies.GENERAL, session.turn_count)
        )


def _reads_as_description(text: str) -> bool:
    """Whether a free-text answer can stand in for the problem description.

    A problem word always qualifies. Otherwise greetings, yes/no answers,
    status queries, small talk and bare addresses are left out.
    """
    if names_a_problem(text):
        return True
    if len(text.strip()) < MIN_DESCRIPTION_LENGTH or intents.extract_protocol(text):
        return False
    if extract_street(text) or find_neighborhood(text):
        return False
    return not (
        intents.is_greeting(text)
        or intents.is_status_query(text)
        or intents.is_affirmative(text)
        or intents.is_negative(text)
        or intents.is_acknowledgment(text)
        or intents.wants_audio_reply(text)
    )


def _settle(machine: ConversationStateMachine, manager: SlotManager) -> None:
    """Advance past the current collecting stage when its slot is filled."""
    stage = machine.current_state
    if stage == Stage.COLLECTING_DESCRIPTION and manager.has(SlotName.DESCRIPTION):
        machine.transition(TransitionTrigger.DESCRIPTION_COLLECTED)
    elif stage == Stage.COLLECTING_LOCATION and manager.has(SlotName.LOCATION):
        machine.transition(TransitionTrigger.LOCATION_COLLECTED)
    elif stage == Stage.COLLECTING_PHOTO and manager.has(SlotName.PHOTO):
        machine.transition(TransitionTrigger.PHOTO_COLLECTED)


def _collect(
    machine: ConversationStateMachine,
    outcome: TurnOutcome,
    event: InboundEvent,
    observation: Observation,
    now: datetime,
) -> None:
    session = machine.session
    manager = SlotManager(session.slots)
    filled = manager.merge_extraction(observation.extraction)
    if event.kind == EventKind.TEXT and _reads_as_description(event.text or ""):
        if manager.fill_description(event.text or ""):
            filled.add(SlotName.DESCRIPTION)
    if event.kind == EventKind.LOCATION and event.has_coordinates:
        if manager.set_coordinates(event.lat, event.lon):
            filled.add(SlotName.LOCATION)
        manager.merge_geo(observation.geo)
    if observation.photo is not None and manager.add_photo(observation.photo):
        filled.add(SlotName.PHOTO)

    _settle(machine, manager)

    if manager.is_complete():
        if machine.current_state != Stage.AWAITING_CONFIRMATION:
            machine.transition(TransitionTrigger.SLOTS_COMPLETE)
        logger.info("All slots filled for %s, materializing", session.sender_id)
        outcome.effects.append(
            MaterializeTicket(draft=build_draft(session), preface=_greet_once(session, now))
        )
        return

    seed = session.turn_count
    if event.kind == EventKind.LOCATION:
        ack = replies.location_ack(session.slots.address_text, session.slots.neighborhood)
    elif filled:
        ack = replies.acknowledgment(seed)
    else:
        ack = None
    missing = manager.next_missing()
    outcome.reply(
        _join(_greet_once(session, now), ack, replies.missing_item_prompt(missing.value, seed)),
        situation=missing.value,
    )


def _on_confirmation(
    machine: ConversationStateMachine,
    outcome: TurnOutcome,
    event: InboundEvent,
    observation: Observation,
) -> None:
    session = machine.session
    text = event.text or ""
    if event.kind == EventKind.TEXT and intents.is_negative(text):
        machine.transition(TransitionTrigger.DECLINED)
        outcome.discarded.extend(SlotManager(session.slots).reset())
        outcome.reply(replies.DECLINED, dedupe=False)
        return
    if event.kind == EventKind.TEXT and intents.is_affirmative(text):
        machine.transition(TransitionTrigger.CONFIRMED)
        outcome.effects.append(MaterializeTicket(draft=build_draft(session)))
        return
    if observation.photo is not None:
        SlotManager(session.slots).add_photo(observation.photo)
    machine.transition(TransitionTrigger.AMBIGUOUS_ANSWER)
    outcome.reply(replies.CONFIRM_REASK, dedupe=False)


def _on_consulting(machine: ConversationStateMachine, outcome: TurnOutcome, event: InboundEvent) -> None:
    protocol = intents.extract_protocol(event.text or "") if event.kind == EventKind.TEXT else None
    if protocol:
        outcome.effects.append(LookupTicket(protocol=protocol))
        return
    machine.transition(TransitionTrigger.PROTOCOL_MISSING)
    outcome.reply(replies.ASK_PROTOCOL, dedupe=False)


# --- Follow-ups after desk calls ---

def on_ticket_created(session: Session, ref: TicketRef, preface: Optional[str] = None) -> TurnOutcome:
    session = session.model_copy(deep=True)
    machine = ConversationStateMachine(session)
    machine.transition(TransitionTrigger.TICKET_CREATED)
    slots = session.slots
    place = slots.address_text or slots.neighborhood
    if place is None and slots.coordinates is not None:
        place = f"{slots.coordinates.lat:.5f}, {slots.coordinates.lon:.5f}"
    outcome = TurnOutcome(session=session, discarded=list(slots.photos))
    outcome.reply(
        _join(
            preface,
            replies.ticket_created(ref.protocol, resolve_category(slots.category)["name"], place),
            sep="\n\n",
        ),
        dedupe=False,
    )
    outcome.effects.append(EvictSession(reason="ticket_created"))
    outcome.trace = machine.get_state_trace()
    return outcome


def on_materialization_failed(session: Session, preface: Optional[str] = None) -> TurnOutcome:
    """Keep every slot and invite the citizen to retry with an affirmative answer."""
    session = session.model_copy(deep=True)
    machine = ConversationStateMachine(session)
    machine.transition(TransitionTrigger.MATERIALIZATION_FAILED)
    outcome = TurnOutcome(session=session)
    outcome.reply(_join(preface, replies.CONFIRM_RETRY, sep="\n\n"), dedupe=False)
    outcome.trace = machine.get_state_trace()
    return outcome


def on_ticket_status(
    session: Session,
    protocol: str,
    status: Optional[TicketStatus],
    failed: bool = False,
    preface: Optional[str] = None,
) -> TurnOutcome:
    session = session.model_copy(deep=True)
    machine = ConversationStateMachine(session)
    outcome = TurnOutcome(session=session)
    if failed:
        machine.transition(TransitionTrigger.LOOKUP_FAILED)
        text = replies.LOOKUP_FAILED
    else:
        machine.transition(TransitionTrigger.PROTOCOL_ANSWERED)
        text = replies.ticket_status(status) if status else replies.ticket_not_found(protocol)
    outcome.reply(_join(preface, text, sep="\n\n"), dedupe=False)
    outcome.trace = machine.get_state_trace()
    return outcome


def record_reply(
    session: Session,
    text: str,
    situation: str = replies.GENERAL,
    dedupe: bool = True,
) -> str:
    """Run the anti-repetition guard and remember the reply that will be sent.

    Mutates ``session`` in place and returns the final text.
    """
    if dedupe:
        text = guardrails.dedupe(text, session.recent_replies, situation, seed=session.turn_count)
    session.recent_replies = (session.recent_replies + [text])[-settings.session.recent_replies:]
    _append_log(session, Role.ASSISTANT, text)
    return text
