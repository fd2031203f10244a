"""Value types flowing through the narrative pipeline.

Every value here is immutable. Methods that "update" a value return a new
instance; mapping fields are exposed as read-only proxies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from uuid import uuid4


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


# =============================================================================
# Closed variants
# =============================================================================


class AgentRole(str, Enum):
    """Kind of generation responsibility an agent prompt targets."""

    NARRATOR = "narrator"
    CHARACTER = "character"
    SUMMARY = "summary"
    CONSISTENCY = "consistency"


class PromptPriority(str, Enum):
    """Priority tier of a prompt within its set."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    FALLBACK = "fallback"


class ExecutionOrder(str, Enum):
    """Concurrency discipline declared by a prompt set."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"


class ErrorSeverity(str, Enum):
    """Severity of a validation error. Only CRITICAL blocks acceptance."""

    MAJOR = "major"
    CRITICAL = "critical"


class StateChangeKind(str, Enum):
    """Kind of state-change proposal emitted by the integrator."""

    CHARACTER_MOVED = "character_moved"
    STATUS_CHANGED = "status_changed"
    FACT_REVEALED = "fact_revealed"
    TIME_ADVANCED = "time_advanced"
    EVENT_OCCURRED = "event_occurred"


class ParticipantStatus(str, Enum):
    """Vital status of a story participant."""

    ALIVE = "alive"
    DEAD = "dead"
    DEPARTED = "departed"
    UNKNOWN = "unknown"

    @property
    def is_active(self) -> bool:
        """Whether a participant with this status may still act."""
        return self not in (ParticipantStatus.DEAD, ParticipantStatus.DEPARTED)


# =============================================================================
# Context snapshot
# =============================================================================


@dataclass(frozen=True)
class ParticipantSummary:
    """What the pipeline knows about one participant for a single run."""

    id: str
    name: str
    status: ParticipantStatus = ParticipantStatus.ALIVE
    known_facts: frozenset[str] = frozenset()
    location_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active


@dataclass(frozen=True)
class LocationSummary:
    """The scene location for a run."""

    id: str
    name: str
    description: str = ""
    present_participant_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class EventDigest:
    """Short description of a past event."""

    id: str
    kind: str
    description: str
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class NarrativeContext:
    """Immutable per-run snapshot of the narrative state.

    Attributes:
        run_id: Pipeline id used to correlate audit entries.
        world_name: Name of the story world.
        participants: Participants relevant to this run.
        location: Current location, if one could be determined.
        recent_events: Most recent events, oldest first.
        summary: Optional rolling summary text.
        metadata: Free-form informational values.
        built_at: When the snapshot was assembled.
    """

    run_id: str
    world_name: str
    participants: tuple[ParticipantSummary, ...] = ()
    location: LocationSummary | None = None
    recent_events: tuple[EventDigest, ...] = ()
    summary: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    built_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "participants", tuple(self.participants))
        object.__setattr__(self, "recent_events", tuple(self.recent_events))
        object.__setattr__(self, "metadata", _frozen_mapping(self.metadata))

    @property
    def participant_names(self) -> list[str]:
        return [p.name for p in self.participants]

    @property
    def inactive_participants(self) -> list[ParticipantSummary]:
        """Participants in context who are dead or departed."""
        return [p for p in self.participants if not p.is_active]

    def participant(self, participant_id: str) -> ParticipantSummary | None:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None


# =============================================================================
# Prompts
# =============================================================================


@dataclass(frozen=True)
class AgentPrompt:
    """One request addressed to an agent role."""

    role: AgentRole
    system_prompt: str
    user_prompt: str
    variables: Mapping[str, str] = field(default_factory=dict)
    priority: PromptPriority = PromptPriority.REQUIRED

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", _frozen_mapping(self.variables))

    def with_variable(self, key: str, value: str) -> "AgentPrompt":
        """Return a copy with one variable added or replaced."""
        variables = dict(self.variables)
        variables[key] = value
        return replace(self, variables=variables)


@dataclass(frozen=True)
class PromptSet:
    """Ordered prompts plus the execution order they must run under.

    Raises:
        ValueError: If two prompts target the same role.
    """

    prompts: tuple[AgentPrompt, ...]
    order: ExecutionOrder = ExecutionOrder.SEQUENTIAL

    def __post_init__(self) -> None:
        prompts = tuple(self.prompts)
        seen: set[AgentRole] = set()
        for prompt in prompts:
            if prompt.role in seen:
                raise ValueError(f"Prompt set already has a prompt for role {prompt.role.value}")
            seen.add(prompt.role)
        object.__setattr__(self, "prompts", prompts)

    def __iter__(self) -> Iterator[AgentPrompt]:
        return iter(self.prompts)

    def __len__(self) -> int:
        return len(self.prompts)

    @property
    def roles(self) -> list[AgentRole]:
        return [p.role for p in self.prompts]

    def get(self, role: AgentRole) -> AgentPrompt | None:
        for prompt in self.prompts:
            if prompt.role == role:
                return prompt
        return None

    def with_priority(self, *priorities: PromptPriority) -> list[AgentPrompt]:
        """Prompts of the given priority tiers, in list order."""
        return [p for p in self.prompts if p.priority in priorities]


# =============================================================================
# Agent output
# =============================================================================


@dataclass(frozen=True)
class AgentResponse:
    """Outcome of one attempted prompt. Content is empty on failure."""

    role: AgentRole
    content: str
    success: bool
    error: str | None = None
    duration_seconds: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _frozen_mapping(self.metadata))

    @classmethod
    def succeeded(
        cls,
        role: AgentRole,
        content: str,
        duration_seconds: float = 0.0,
        metadata: Mapping[str, Any] | None = None,
    ) -> "AgentResponse":
        return cls(
            role=role,
            content=content,
            success=True,
            duration_seconds=duration_seconds,
            metadata=metadata or {},
        )

    @classmethod
    def failed(
        cls,
        role: AgentRole,
        error: str,
        duration_seconds: float = 0.0,
        metadata: Mapping[str, Any] | None = None,
    ) -> "AgentResponse":
        return cls(
            role=role,
            content="",
            success=False,
            error=error,
            duration_seconds=duration_seconds,
            metadata=metadata or {},
        )

    def with_metadata(self, key: str, value: Any) -> "AgentResponse":
        """Return a copy with one metadata entry added or replaced."""
        metadata = dict(self.metadata)
        metadata[key] = value
        return replace(self, metadata=metadata)


@dataclass(frozen=True)
class RawOutput:
    """All responses from one executor invocation, keyed by role.

    Consumers must not depend on the order responses completed in.
    """

    responses: Mapping[AgentRole, AgentResponse]
    total_duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "responses", MappingProxyType(dict(self.responses)))

    @classmethod
    def from_responses(
        cls,
        responses: list[AgentResponse],
        total_duration_seconds: float = 0.0,
    ) -> "RawOutput":
        return cls({r.role: r for r in responses}, total_duration_seconds)

    def __len__(self) -> int:
        return len(self.responses)

    def __contains__(self, role: object) -> bool:
        return role in self.responses

    @property
    def roles(self) -> list[AgentRole]:
        return list(self.responses)

    def get(self, role: AgentRole) -> AgentResponse | None:
        return self.responses.get(role)

    def content_for(self, role: AgentRole) -> str:
        """Text produced for a role, or an empty string."""
        response = self.responses.get(role)
        if response is None or not response.success:
            return ""
        return response.content

    def succeeded(self, role: AgentRole) -> bool:
        response = self.responses.get(role)
        return response is not None and response.success

    @property
    def any_successful(self) -> bool:
        return any(r.success for r in self.responses.values())

    @property
    def all_successful(self) -> bool:
        return bool(self.responses) and all(r.success for r in self.responses.values())

    @property
    def successful_responses(self) -> list[AgentResponse]:
        return [r for r in self.responses.values() if r.success]

    @property
    def failed_responses(self) -> list[AgentResponse]:
        return [r for r in self.responses.values() if not r.success]


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class ValidationError:
    """A Major or Critical validation finding."""

    message: str
    severity: ErrorSeverity
    role: AgentRole | None = None
    suggested_fix: str | None = None

    def __str__(self) -> str:
        prefix = f"[{self.severity.value.upper()}]"
        if self.role is not None:
            prefix += f" ({self.role.value})"
        return f"{prefix} {self.message}"


@dataclass(frozen=True)
class ValidationWarning:
    """An informational finding that never blocks acceptance."""

    message: str
    role: AgentRole | None = None

    def __str__(self) -> str:
        if self.role is not None:
            return f"[WARNING] ({self.role.value}) {self.message}"
        return f"[WARNING] {self.message}"


@dataclass(frozen=True)
class ValidationVerdict:
    """Result of validating a RawOutput.

    ``is_valid`` is derived: it is False exactly when a Critical error exists.
    """

    errors: tuple[ValidationError, ...] = ()
    warnings: tuple[ValidationWarning, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "warnings", tuple(self.warnings))

    @property
    def is_valid(self) -> bool:
        return not self.has_critical

    @property
    def has_critical(self) -> bool:
        return any(e.severity == ErrorSeverity.CRITICAL for e in self.errors)

    @property
    def has_major(self) -> bool:
        return any(e.severity == ErrorSeverity.MAJOR for e in self.errors)

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]

    @property
    def warning_messages(self) -> list[str]:
        return [w.message for w in self.warnings]

    def messages_for(self, role: AgentRole) -> list[str]:
        """Rendered findings attributed to a role or to no role at all."""
        lines = [str(e) for e in self.errors if e.role in (role, None)]
        lines.extend(str(w) for w in self.warnings if w.role in (role, None))
        return lines


# =============================================================================
# Delta
# =============================================================================


@dataclass(frozen=True)
class GeneratedEvent:
    """An event synthesized from accepted output."""

    event_type: str
    description: str
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class StateChange:
    """A proposed change to narrative state. Never applied by the pipeline."""

    kind: StateChangeKind
    entity_id: str
    description: str
    old_value: str | None = None
    new_value: str | None = None


@dataclass(frozen=True)
class NarrativeDelta:
    """Proposed text, events and state changes from one pipeline run."""

    text: str
    events: tuple[GeneratedEvent, ...] = ()
    state_changes: tuple[StateChange, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "state_changes", tuple(self.state_changes))
        object.__setattr__(self, "metadata", _frozen_mapping(self.metadata))

    def events_of_type(self, event_type: str) -> list[GeneratedEvent]:
        return [e for e in self.events if e.event_type == event_type]
