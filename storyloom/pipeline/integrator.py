"""State integration: accepted output -> NarrativeDelta."""

import logging
import re

from storyloom.audit.trail import AuditTrail
from storyloom.pipeline.pacing import LatencyPacing, PacingPolicy
from storyloom.pipeline.schemas import (
    AgentRole,
    GeneratedEvent,
    NarrativeContext,
    NarrativeDelta,
    RawOutput,
    StateChange,
    StateChangeKind,
)

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "[No narrative content generated]"

NARRATIVE_GENERATED = "NarrativeGenerated"
DIALOGUE_GENERATED = "DialogueGenerated"

WORLD_ENTITY_ID = "world"

# Roles whose text becomes narrative, in output order
NARRATIVE_ROLE_ORDER = (AgentRole.NARRATOR, AgentRole.CHARACTER, AgentRole.SUMMARY)

# Straight or curly double quotes around at least one word character
QUOTED_UTTERANCE = re.compile(r'["“][^"“”]*\w[^"“”]*["”]')


def contains_dialogue(text: str) -> bool:
    return QUOTED_UTTERANCE.search(text) is not None


class StateIntegrator:
    """Merges validated output into a narrative delta.

    Args:
        pacing: Policy sizing the time-advance proposal.
        audit: Receives one entry per state-change proposal.
    """

    def __init__(
        self,
        pacing: PacingPolicy | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        self.pacing = pacing or LatencyPacing()
        self.audit = audit

    def integrate(self, raw: RawOutput, context: NarrativeContext) -> NarrativeDelta:
        """Build the delta for an accepted output.

        Raises:
            ValueError: If raw or context is missing.
        """
        if raw is None:
            raise ValueError("raw output is required")
        if context is None:
            raise ValueError("context is required")

        sections = [raw.content_for(role).strip() for role in NARRATIVE_ROLE_ORDER]
        sections = [s for s in sections if s]
        text = "\n\n".join(sections) if sections else FALLBACK_TEXT

        events = [
            GeneratedEvent(NARRATIVE_GENERATED, f"Narrative content generated: {len(text)} chars"),
        ]
        if any(contains_dialogue(s) for s in sections):
            events.append(GeneratedEvent(DIALOGUE_GENERATED, "Character dialogue generated"))

        advance = self.pacing.time_advance(raw, context)
        state_changes = [
            StateChange(
                kind=StateChangeKind.TIME_ADVANCED,
                entity_id=WORLD_ENTITY_ID,
                description=f"Time advanced by {advance}",
                new_value=f"{advance.total_seconds():.3f}",
            )
        ]

        metadata = {
            "source_roles": [r.role.value for r in raw.successful_responses],
            "total_duration_seconds": raw.total_duration_seconds,
            "event_count": len(events),
            "state_change_count": len(state_changes),
        }
        notes = raw.content_for(AgentRole.CONSISTENCY).strip()
        if notes:
            metadata["consistency_notes"] = notes

        if self.audit is not None:
            for change in state_changes:
                self.audit.record_state_change(
                    context.run_id,
                    change.kind.value,
                    change.description,
                    old_value=change.old_value,
                    new_value=change.new_value,
                )

        logger.debug(
            "Integrated %d chars, %d events, %d state changes for %s",
            len(text),
            len(events),
            len(state_changes),
            context.run_id,
        )
        return NarrativeDelta(text, tuple(events), tuple(state_changes), metadata)
