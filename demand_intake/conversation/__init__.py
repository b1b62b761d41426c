from demand_intake.conversation.guardrails import RepetitionGuardrail
from demand_intake.conversation.slot_manager import SlotManager, SlotName
from demand_intake.conversation.state_machine import (
    ConversationStateMachine,
    Observation,
    TransitionTrigger,
    TurnOutcome,
)

__all__ = [
    "ConversationStateMachine",
    "Observation",
    "TransitionTrigger",
    "TurnOutcome",
    "SlotManager",
    "SlotName",
    "RepetitionGuardrail",
]
