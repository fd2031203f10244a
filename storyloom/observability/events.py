"""Progress events emitted by the narrative pipeline.

Every event carries the ``pipeline_id`` of the run that produced it, so a
hook shared by concurrent runs can tell them apart.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class PhaseStartEvent:
    phase: str
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class PhaseEndEvent:
    """A stage finished.

    ``success`` is False when the stage raised, or when it completed but
    produced nothing usable (no successful agent response, an invalid
    verdict). ``details`` holds stage-specific extras.
    """

    phase: str
    duration_ms: float
    success: bool = True
    pipeline_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentCallStartEvent:
    role: str
    priority: str
    attempt: int = 0  # rewrite attempt number, 0 for the first execution
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentCallEndEvent:
    role: str
    duration_ms: float
    success: bool
    attempt: int = 0
    error: str | None = None
    completion_tokens: int = 0
    text_preview: str = ""
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ValidationEvent:
    """A verdict. ``attempt`` and ``max_attempts`` count validations, from 1."""

    attempt: int
    max_attempts: int
    passed: bool
    error_count: int = 0
    warning_count: int = 0
    errors: list[str] = field(default_factory=list)
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class RewriteEvent:
    attempt: int
    max_attempts: int
    roles: list[str]
    reason: str = ""
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
