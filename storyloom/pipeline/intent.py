"""Narrative intents: what kind of story beat the caller wants next."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class IntentType(str, Enum):
    """Recognized narrative-beat kinds."""

    CONTINUE = "continue"
    INTRODUCE_EVENT = "introduce_event"
    GENERATE_DIALOGUE = "generate_dialogue"
    DESCRIBE_LOCATION = "describe_location"
    SUMMARIZE = "summarize"
    CREATE_TENSION = "create_tension"
    RESOLVE_CONFLICT = "resolve_conflict"


_KNOWN_KINDS = frozenset(t.value for t in IntentType)


@dataclass(frozen=True)
class NarrativeIntent:
    """A requested narrative beat.

    ``kind`` accepts an IntentType or its string value. Strings that match no
    known kind are kept verbatim; the compiler treats them as a continuation.

    Attributes:
        kind: The beat kind.
        description: Free-text guidance for the agents.
        target_participant_ids: Restrict the context to these participants.
        target_location_id: Force the scene location.
        parameters: Extra caller-supplied values.
    """

    kind: IntentType | str
    description: str = ""
    target_participant_ids: tuple[str, ...] = ()
    target_location_id: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, IntentType):
            normalized = str(self.kind).lower()
            if normalized in _KNOWN_KINDS:
                object.__setattr__(self, "kind", IntentType(normalized))
        object.__setattr__(self, "target_participant_ids", tuple(self.target_participant_ids))
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def intent_type(self) -> IntentType | None:
        """The recognized kind, or None when the kind is unknown."""
        return self.kind if isinstance(self.kind, IntentType) else None

    @property
    def kind_name(self) -> str:
        return self.kind.value if isinstance(self.kind, IntentType) else str(self.kind)

    @classmethod
    def continue_story(cls, description: str = "") -> "NarrativeIntent":
        return cls(IntentType.CONTINUE, description)

    @classmethod
    def dialogue(cls, participant_ids: list[str] | tuple[str, ...], description: str = "") -> "NarrativeIntent":
        return cls(
            IntentType.GENERATE_DIALOGUE,
            description,
            target_participant_ids=tuple(participant_ids),
        )

    @classmethod
    def describe_location(cls, location_id: str, description: str = "") -> "NarrativeIntent":
        return cls(IntentType.DESCRIBE_LOCATION, description, target_location_id=location_id)

    @classmethod
    def summarize(cls, description: str = "") -> "NarrativeIntent":
        return cls(IntentType.SUMMARIZE, description)
