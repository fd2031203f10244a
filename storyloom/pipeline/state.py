"""Narrative state provider contract and an in-memory implementation.

The pipeline only reads from a provider. Applying the proposed state changes
of a NarrativeDelta is the caller's decision.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol, Sequence, runtime_checkable
from uuid import uuid4

from storyloom.pipeline.schemas import ParticipantStatus, StateChange, StateChangeKind

logger = logging.getLogger(__name__)


@dataclass
class ParticipantRecord:
    """A story participant as stored by the state provider."""

    id: str
    name: str
    status: ParticipantStatus = ParticipantStatus.ALIVE
    known_facts: set[str] = field(default_factory=set)
    location_id: str | None = None


@dataclass
class LocationRecord:
    """A location in the story world."""

    id: str
    name: str
    description: str = ""


@dataclass
class EventRecord:
    """An event in the story log."""

    kind: str
    description: str
    id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=datetime.now)
    participant_ids: tuple[str, ...] = ()


@runtime_checkable
class NarrativeStateProvider(Protocol):
    """What the context assembler reads, and where callers apply deltas."""

    @property
    def world_name(self) -> str:
        ...

    def participants(self) -> Sequence[ParticipantRecord]:
        """Full participant roster, any status."""
        ...

    def locations(self) -> Sequence[LocationRecord]:
        ...

    def recent_events(self, limit: int) -> Sequence[EventRecord]:
        """The ``limit`` most recent events, oldest first."""
        ...

    def external_summary(self) -> str | None:
        """Optional rolling summary maintained outside the pipeline."""
        ...

    def apply_changes(self, changes: Sequence[StateChange]) -> None:
        """Apply proposed changes against the provider's own state."""
        ...


class NarrativeState:
    """In-memory narrative state.

    Example:
        state = NarrativeState("Eldoria")
        state.add_location(LocationRecord("tavern", "The Prancing Pony"))
        state.add_participant(ParticipantRecord("alice", "Alice", location_id="tavern"))
    """

    def __init__(
        self,
        world_name: str,
        participants: Sequence[ParticipantRecord] | None = None,
        locations: Sequence[LocationRecord] | None = None,
        events: Sequence[EventRecord] | None = None,
        summary: str | None = None,
    ) -> None:
        self._world_name = world_name
        self._participants: dict[str, ParticipantRecord] = {}
        self._locations: dict[str, LocationRecord] = {}
        self._events: list[EventRecord] = list(events or [])
        self._summary = summary
        self.elapsed = timedelta()

        for location in locations or []:
            self.add_location(location)
        for participant in participants or []:
            self.add_participant(participant)

    @property
    def world_name(self) -> str:
        return self._world_name

    def add_participant(self, participant: ParticipantRecord) -> None:
        self._participants[participant.id] = participant

    def add_location(self, location: LocationRecord) -> None:
        self._locations[location.id] = location

    def add_event(self, event: EventRecord) -> None:
        self._events.append(event)

    def set_summary(self, summary: str | None) -> None:
        self._summary = summary

    def get_participant(self, participant_id: str) -> ParticipantRecord | None:
        return self._participants.get(participant_id)

    def participants(self) -> list[ParticipantRecord]:
        return list(self._participants.values())

    def locations(self) -> list[LocationRecord]:
        return list(self._locations.values())

    def recent_events(self, limit: int) -> list[EventRecord]:
        if limit <= 0:
            return []
        return self._events[-limit:]

    def external_summary(self) -> str | None:
        return self._summary

    def apply_changes(self, changes: Sequence[StateChange]) -> None:
        """Apply state-change proposals in order.

        Args:
            changes: Proposals, usually from NarrativeDelta.state_changes.

        Raises:
            KeyError: If a change names an unknown participant.
        """
        for change in changes:
            self._apply(change)

    def _apply(self, change: StateChange) -> None:
        if change.kind == StateChangeKind.TIME_ADVANCED:
            self.elapsed += timedelta(seconds=float(change.new_value or 0))
        elif change.kind == StateChangeKind.EVENT_OCCURRED:
            self._events.append(EventRecord(kind=change.new_value or "event", description=change.description))
        elif change.kind == StateChangeKind.CHARACTER_MOVED:
            self._require_participant(change.entity_id).location_id = change.new_value
        elif change.kind == StateChangeKind.STATUS_CHANGED:
            self._require_participant(change.entity_id).status = ParticipantStatus(change.new_value)
        elif change.kind == StateChangeKind.FACT_REVEALED:
            if change.new_value:
                self._require_participant(change.entity_id).known_facts.add(change.new_value)
        logger.debug("Applied %s to %s", change.kind.value, change.entity_id)

    def _require_participant(self, participant_id: str) -> ParticipantRecord:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise KeyError(f"Unknown participant: {participant_id}")
        return participant
