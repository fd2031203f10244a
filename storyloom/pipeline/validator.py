"""Output validation: structural and referential checks on agent output.

Severity model:
    Critical  blocks acceptance (no output, empty output, inactive participant acting)
    Major     recorded, non-blocking (failed agent, text too short)
    Warning   informational (text too long, forbidden pattern, location not mentioned)

Consistency output is fact-check notes, not narrative, so it is only checked
for being empty or failed. Length bounds can be set per role.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from storyloom.config import Settings
from storyloom.pipeline.schemas import (
    AgentResponse,
    AgentRole,
    ErrorSeverity,
    NarrativeContext,
    RawOutput,
    ValidationError,
    ValidationVerdict,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

# Verbs that mean a participant is doing something on-page
ACTION_VERBS = (
    "said", "says", "spoke", "speaks", "asked", "asks", "replied", "replies",
    "answered", "answers", "whispered", "whispers", "shouted", "shouts",
    "muttered", "mutters", "cried", "cries", "laughed", "laughs",
    "smiled", "smiles", "grinned", "grins", "nodded", "nods", "shrugged", "shrugs",
    "looked", "looks", "turned", "turns", "pointed", "points",
    "walked", "walks", "ran", "runs", "went", "goes", "came", "comes",
    "moved", "moves", "stepped", "steps", "jumped", "jumps",
    "entered", "enters", "left", "leaves", "stood", "stands", "sat", "sits",
    "grabbed", "grabs", "opened", "opens", "reached", "reaches",
    "drew", "draws", "raised", "raises", "took", "takes", "gave", "gives",
    "attacked", "attacks", "fought", "fights", "ate", "eats",
)

SPEECH_VERBS = ("said", "asked", "replied", "answered", "whispered", "shouted", "muttered", "cried")


@dataclass(frozen=True)
class ValidatorConfig:
    """Thresholds and switches for OutputValidator.

    Attributes:
        min_content_length: Default lower bound (Major when undershot).
        max_content_length: Default upper bound (Warning when exceeded).
        forbidden_patterns: Case-insensitive substrings that warn.
        check_inactive_participants: Flag inactive participants acting.
        check_location_mentioned: Warn when the location name is missing.
        min_length_per_role: Per-role overrides of ``min_content_length``.
        max_length_per_role: Per-role overrides of ``max_content_length``.
    """

    min_content_length: int = 10
    max_content_length: int = 10000
    forbidden_patterns: tuple[str, ...] = ()
    check_inactive_participants: bool = True
    check_location_mentioned: bool = True
    min_length_per_role: Mapping[AgentRole, int] = field(default_factory=dict)
    max_length_per_role: Mapping[AgentRole, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "forbidden_patterns", tuple(self.forbidden_patterns))
        for name in ("min_length_per_role", "max_length_per_role"):
            bounds = {AgentRole(role): value for role, value in getattr(self, name).items()}
            object.__setattr__(self, name, MappingProxyType(bounds))

        if self.min_content_length < 0:
            raise ValueError("min_content_length must not be negative")
        if self.max_content_length < self.min_content_length:
            raise ValueError("max_content_length must be >= min_content_length")
        for role in AgentRole:
            if self.min_length_for(role) < 0:
                raise ValueError(f"minimum length for {role.value} must not be negative")
            if self.max_length_for(role) < self.min_length_for(role):
                raise ValueError(f"maximum length for {role.value} must be >= its minimum")

    def min_length_for(self, role: AgentRole) -> int:
        return self.min_length_per_role.get(role, self.min_content_length)

    def max_length_for(self, role: AgentRole) -> int:
        return self.max_length_per_role.get(role, self.max_content_length)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidatorConfig":
        return cls(
            min_content_length=settings.min_content_length,
            max_content_length=settings.max_content_length,
            forbidden_patterns=tuple(settings.forbidden_patterns),
            min_length_per_role=settings.min_length_per_role,
            max_length_per_role=settings.max_length_per_role,
        )

    @classmethod
    def strict(cls) -> "ValidatorConfig":
        """Tighter bounds plus common leftover-marker patterns."""
        return cls(
            min_content_length=50,
            max_content_length=5000,
            forbidden_patterns=("[ERROR]", "[TODO]", "PLACEHOLDER"),
        )


@lru_cache(maxsize=256)
def _acting_pattern(name: str) -> re.Pattern[str]:
    """Regex matching ``name`` as the subject or speaker of an action verb."""
    escaped = r"\s+".join(re.escape(part) for part in name.split())
    verbs = "|".join(ACTION_VERBS)
    speech = "|".join(SPEECH_VERBS)
    return re.compile(
        rf"\b{escaped}\b(?:\s+\w+ly)?\s+(?:{verbs})\b"
        rf"|\b(?:{speech})\s+{escaped}\b",
        re.IGNORECASE,
    )


def mentions_acting(text: str, name: str) -> bool:
    """Whether ``text`` shows ``name`` performing an action.

    "Bob walked in" and '"Go," said Bob' count; "Alice remembered Bob" does not.
    """
    if not name.strip():
        return False
    return _acting_pattern(name.strip()).search(text) is not None


class OutputValidator:
    """Checks a RawOutput against the run's context.

    Example:
        validator = OutputValidator(ValidatorConfig(min_content_length=20))
        verdict = validator.validate(raw, context)
        if not verdict.is_valid:
            ...
    """

    def __init__(self, config: ValidatorConfig | None = None) -> None:
        self.config = config or ValidatorConfig()

    def validate(self, raw: RawOutput, context: NarrativeContext) -> ValidationVerdict:
        """Validate every response in ``raw``.

        Raises:
            ValueError: If raw or context is missing.
        """
        if raw is None:
            raise ValueError("raw output is required")
        if context is None:
            raise ValueError("context is required")

        errors: list[ValidationError] = []
        warnings: list[ValidationWarning] = []

        if not raw.any_successful:
            errors.append(
                ValidationError(
                    "No agent produced output",
                    ErrorSeverity.CRITICAL,
                    suggested_fix="Check the generation backend and retry",
                )
            )

        for response in raw.failed_responses:
            errors.append(
                ValidationError(
                    f"Agent {response.role.value} failed: {response.error or 'unknown error'}",
                    ErrorSeverity.MAJOR,
                    role=response.role,
                )
            )

        for response in raw.successful_responses:
            self._check_response(response, context, errors, warnings)

        self._check_location(raw, context, warnings)

        verdict = ValidationVerdict(tuple(errors), tuple(warnings))
        logger.debug(
            "Verdict for %s: valid=%s errors=%d warnings=%d",
            context.run_id,
            verdict.is_valid,
            len(verdict.errors),
            len(verdict.warnings),
        )
        return verdict

    def _check_response(
        self,
        response: AgentResponse,
        context: NarrativeContext,
        errors: list[ValidationError],
        warnings: list[ValidationWarning],
    ) -> None:
        role = response.role
        text = response.content.strip()

        if not text:
            errors.append(
                ValidationError(
                    f"Agent {role.value} returned empty content",
                    ErrorSeverity.CRITICAL,
                    role=role,
                    suggested_fix="Produce narrative text for this beat",
                )
            )
            return

        if role is AgentRole.CONSISTENCY:
            # Fact-check notes quote violations; they never become narrative
            return

        min_length = self.config.min_length_for(role)
        max_length = self.config.max_length_for(role)
        if len(text) < min_length:
            errors.append(
                ValidationError(
                    f"Output too short ({len(text)} < {min_length} characters)",
                    ErrorSeverity.MAJOR,
                    role=role,
                    suggested_fix="Expand the passage",
                )
            )
        if len(text) > max_length:
            warnings.append(
                ValidationWarning(
                    f"Output too long ({len(text)} > {max_length} characters)",
                    role=role,
                )
            )

        lowered = text.lower()
        for pattern in self.config.forbidden_patterns:
            if pattern and pattern.lower() in lowered:
                warnings.append(ValidationWarning(f"Forbidden pattern found: {pattern}", role=role))

        if self.config.check_inactive_participants:
            for participant in context.inactive_participants:
                if mentions_acting(text, participant.name):
                    errors.append(
                        ValidationError(
                            f"Inactive entity acting: {participant.name} is "
                            f"{participant.status.value} but acts in the text",
                            ErrorSeverity.CRITICAL,
                            role=role,
                            suggested_fix=f"Only refer to {participant.name} in memories or descriptions",
                        )
                    )

    def _check_location(
        self,
        raw: RawOutput,
        context: NarrativeContext,
        warnings: list[ValidationWarning],
    ) -> None:
        location = context.location
        if not self.config.check_location_mentioned or location is None:
            return
        texts = [
            r.content
            for r in raw.successful_responses
            if r.role is not AgentRole.CONSISTENCY and r.content.strip()
        ]
        if not texts:
            return
        combined = "\n".join(texts).lower()
        if location.name.lower() not in combined:
            warnings.append(ValidationWarning(f"Location '{location.name}' is not mentioned"))
