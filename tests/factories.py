"""Factory functions for creating pipeline test values with sensible defaults."""

from typing import Any
from uuid import uuid4

from storyloom.pipeline.schemas import (
    AgentPrompt,
    AgentResponse,
    AgentRole,
    ExecutionOrder,
    LocationSummary,
    NarrativeContext,
    ParticipantStatus,
    ParticipantSummary,
    PromptPriority,
    PromptSet,
    RawOutput,
)
from storyloom.pipeline.state import (
    EventRecord,
    LocationRecord,
    NarrativeState,
    ParticipantRecord,
)

NARRATION_80 = (
    "Rain drummed on the tavern roof while Alice counted the coins on the table."
)


def _unique_key(prefix: str = "test") -> str:
    """Generate a unique key for test entities."""
    return f"{prefix}_{uuid4().hex[:8]}"


# =============================================================================
# Context Factories
# =============================================================================


def create_participant(**overrides: Any) -> ParticipantSummary:
    """Create a ParticipantSummary with sensible defaults."""
    defaults = {
        "id": _unique_key("participant"),
        "name": "Alice",
        "status": ParticipantStatus.ALIVE,
        "known_facts": frozenset(),
        "location_id": None,
    }
    defaults.update(overrides)
    return ParticipantSummary(**defaults)


def create_location(**overrides: Any) -> LocationSummary:
    """Create a LocationSummary with sensible defaults."""
    defaults = {
        "id": _unique_key("location"),
        "name": "The Rusty Anchor",
        "description": "A smoky harbor tavern.",
        "present_participant_ids": frozenset(),
    }
    defaults.update(overrides)
    return LocationSummary(**defaults)


def create_context(**overrides: Any) -> NarrativeContext:
    """Create a NarrativeContext with sensible defaults."""
    defaults = {
        "run_id": _unique_key("run"),
        "world_name": "Eldoria",
        "participants": (create_participant(id="alice", name="Alice"),),
        "location": None,
        "recent_events": (),
        "summary": None,
    }
    defaults.update(overrides)
    return NarrativeContext(**defaults)


# =============================================================================
# Prompt & Output Factories
# =============================================================================


def create_prompt(
    role: AgentRole = AgentRole.NARRATOR,
    priority: PromptPriority = PromptPriority.REQUIRED,
    **overrides: Any,
) -> AgentPrompt:
    """Create an AgentPrompt with sensible defaults."""
    defaults = {
        "system_prompt": f"You are the {role.value}.",
        "user_prompt": f"Write the next {role.value} passage.",
    }
    defaults.update(overrides)
    return AgentPrompt(role=role, priority=priority, **defaults)


def create_prompt_set(
    *specs: tuple[AgentRole, PromptPriority],
    order: ExecutionOrder = ExecutionOrder.SEQUENTIAL,
) -> PromptSet:
    """Create a PromptSet from (role, priority) pairs."""
    if not specs:
        specs = ((AgentRole.NARRATOR, PromptPriority.REQUIRED),)
    return PromptSet(tuple(create_prompt(role, priority) for role, priority in specs), order)


def create_raw_output(*responses: AgentResponse, duration: float = 1.5) -> RawOutput:
    """Create a RawOutput; defaults to one successful narrator response."""
    if not responses:
        responses = (AgentResponse.succeeded(AgentRole.NARRATOR, NARRATION_80, 1.0),)
    return RawOutput.from_responses(list(responses), duration)


# =============================================================================
# State Factories
# =============================================================================


def create_state(**overrides: Any) -> NarrativeState:
    """Create an in-memory state: Alice and Bob alive in the tavern, Carol dead."""
    defaults = {
        "world_name": "Eldoria",
        "locations": [
            LocationRecord("tavern", "The Rusty Anchor", "A smoky harbor tavern."),
            LocationRecord("docks", "The Docks", "Wet planks and gull cries."),
        ],
        "participants": [
            ParticipantRecord("alice", "Alice", known_facts={"owes Bob money"}, location_id="tavern"),
            ParticipantRecord("bob", "Bob", location_id="tavern"),
            ParticipantRecord("carol", "Carol", status=ParticipantStatus.DEAD, location_id="docks"),
        ],
        "events": [
            EventRecord("arrival", f"Event {i}") for i in range(12)
        ],
        "summary": None,
    }
    defaults.update(overrides)
    return NarrativeState(**defaults)


# =============================================================================
# Observability
# =============================================================================


class RecordingHook:
    """Observability hook that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def _record(self, name: str, event: Any) -> None:
        self.events.append((name, event))

    def of(self, name: str) -> list[Any]:
        return [event for recorded, event in self.events if recorded == name]

    def on_phase_start(self, event: Any) -> None:
        self._record("phase_start", event)

    def on_phase_end(self, event: Any) -> None:
        self._record("phase_end", event)

    def on_agent_call_start(self, event: Any) -> None:
        self._record("agent_call_start", event)

    def on_agent_call_end(self, event: Any) -> None:
        self._record("agent_call_end", event)

    def on_validation(self, event: Any) -> None:
        self._record("validation", event)

    def on_rewrite(self, event: Any) -> None:
        self._record("rewrite", event)
