"""Context assembly: a bounded snapshot of the state relevant to one run."""

import logging
from uuid import uuid4

from storyloom.pipeline.intent import NarrativeIntent
from storyloom.pipeline.schemas import (
    EventDigest,
    LocationSummary,
    NarrativeContext,
    ParticipantSummary,
)
from storyloom.pipeline.state import (
    LocationRecord,
    NarrativeStateProvider,
    ParticipantRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_EVENT_WINDOW = 10


class ContextAssembler:
    """Builds a NarrativeContext from a state provider and an intent.

    Participant selection:
        - With explicit targets, exactly those participants (any status).
          Unknown ids are skipped and listed under ``skipped_targets``.
        - Otherwise every active participant.

    Location selection:
        - With a target location, that location; present participants are
          the included participants standing in it. An unknown target
          location counts as no target.
        - Otherwise the single location all located participants share,
          or none when they are spread out.
    """

    def __init__(self, event_window: int = DEFAULT_EVENT_WINDOW) -> None:
        if event_window < 0:
            raise ValueError("event_window must not be negative")
        self.event_window = event_window

    def assemble(
        self,
        state: NarrativeStateProvider,
        intent: NarrativeIntent,
        run_id: str | None = None,
    ) -> NarrativeContext:
        """Assemble the context for one pipeline run.

        Args:
            state: Narrative state to read from.
            intent: The requested beat.
            run_id: Pipeline id for the run (generated when omitted).

        Returns:
            Immutable context snapshot.

        Raises:
            ValueError: If state or intent is missing.
        """
        if state is None:
            raise ValueError("state is required")
        if intent is None:
            raise ValueError("intent is required")

        skipped: list[str] = []
        records = self._select_participants(state, intent, skipped)
        participants = tuple(self._summarize_participant(r) for r in records)
        location = self._select_location(state, intent, participants, skipped)
        events = tuple(
            EventDigest(id=e.id, kind=e.kind, description=e.description, occurred_at=e.occurred_at)
            for e in state.recent_events(self.event_window)
        )

        context = NarrativeContext(
            run_id=run_id or str(uuid4()),
            world_name=state.world_name,
            participants=participants,
            location=location,
            recent_events=events,
            summary=state.external_summary(),
            metadata={
                "intent_type": intent.kind_name,
                "participant_count": len(participants),
                "has_location": location is not None,
                "event_count": len(events),
                "skipped_targets": tuple(skipped),
            },
        )
        logger.debug(
            "Context %s built with %d participants, %d events, location=%s",
            context.run_id,
            len(participants),
            len(events),
            location.name if location else None,
        )
        return context

    def _select_participants(
        self,
        state: NarrativeStateProvider,
        intent: NarrativeIntent,
        skipped: list[str],
    ) -> list[ParticipantRecord]:
        roster = state.participants()
        if not intent.target_participant_ids:
            return [p for p in roster if p.status.is_active]

        by_id = {p.id: p for p in roster}
        selected = []
        for participant_id in intent.target_participant_ids:
            if participant_id not in by_id:
                logger.warning("Intent targets unknown participant %s, skipping", participant_id)
                skipped.append(participant_id)
                continue
            selected.append(by_id[participant_id])
        return selected

    def _summarize_participant(self, record: ParticipantRecord) -> ParticipantSummary:
        return ParticipantSummary(
            id=record.id,
            name=record.name,
            status=record.status,
            known_facts=frozenset(record.known_facts),
            location_id=record.location_id,
        )

    def _select_location(
        self,
        state: NarrativeStateProvider,
        intent: NarrativeIntent,
        participants: tuple[ParticipantSummary, ...],
        skipped: list[str],
    ) -> LocationSummary | None:
        locations = {loc.id: loc for loc in state.locations()}

        if intent.target_location_id is not None:
            record = locations.get(intent.target_location_id)
            if record is not None:
                return self._summarize_location(record, participants)
            logger.warning(
                "Intent targets unknown location %s, inferring from participants",
                intent.target_location_id,
            )
            skipped.append(intent.target_location_id)

        shared = {p.location_id for p in participants if p.location_id is not None}
        if len(shared) != 1:
            return None
        record = locations.get(shared.pop())
        if record is None:
            return None
        return self._summarize_location(record, participants)

    def _summarize_location(
        self,
        record: LocationRecord,
        participants: tuple[ParticipantSummary, ...],
    ) -> LocationSummary:
        return LocationSummary(
            id=record.id,
            name=record.name,
            description=record.description,
            present_participant_ids=frozenset(
                p.id for p in participants if p.location_id == record.id
            ),
        )
