"""Capacity-bounded audit trail for pipeline runs.

The trail records decisions, agent actions, validation outcomes and state
change proposals. It is thread-safe, append-only, and evicts its oldest
entries once capacity is reached. One instance is owned by the caller and
shared across runs.
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10000
REPORT_RULE_WIDTH = 60


class AuditSeverity(IntEnum):
    """Ordered severity of an audit entry."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


class AuditCategory(str, Enum):
    """Concern an audit entry belongs to."""

    AGENT = "agent"
    VALIDATION = "validation"
    PIPELINE = "pipeline"
    SYSTEM = "system"
    STATE_CHANGE = "state_change"


_SEVERITY_MARKS = {
    AuditSeverity.CRITICAL: "[CRIT]",
    AuditSeverity.ERROR: "[ERR] ",
    AuditSeverity.WARNING: "[WARN]",
    AuditSeverity.INFO: "[INFO]",
    AuditSeverity.DEBUG: "[DBG] ",
}


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record.

    Attributes:
        pipeline_id: Run the entry belongs to.
        action: Short action name (e.g. "Decision", "AgentCompleted").
        actor: Component or agent role that acted.
        description: Human-readable description.
        severity: Entry severity.
        category: Entry category.
        details: Optional structured values.
        timestamp: When the entry was created.
    """

    pipeline_id: str
    action: str
    actor: str
    description: str
    severity: AuditSeverity = AuditSeverity.INFO
    category: AuditCategory = AuditCategory.PIPELINE
    details: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @classmethod
    def decision(
        cls,
        pipeline_id: str,
        decision: str,
        reason: str,
        details: Mapping[str, Any] | None = None,
    ) -> "AuditEntry":
        return cls(
            pipeline_id=pipeline_id,
            action="Decision",
            actor="Orchestrator",
            description=f"{decision}: {reason}",
            severity=AuditSeverity.INFO,
            category=AuditCategory.PIPELINE,
            details=details or {},
        )

    @classmethod
    def agent_action(
        cls,
        pipeline_id: str,
        agent: str,
        action: str,
        description: str,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditEntry":
        return cls(
            pipeline_id=pipeline_id,
            action=action,
            actor=agent,
            description=description,
            severity=severity,
            category=AuditCategory.AGENT,
            details={"agent_role": agent},
        )

    @classmethod
    def validation_failure(
        cls,
        pipeline_id: str,
        validation_type: str,
        errors: Iterable[str],
        severity: AuditSeverity = AuditSeverity.WARNING,
    ) -> "AuditEntry":
        error_list = list(errors)
        return cls(
            pipeline_id=pipeline_id,
            action="ValidationFailed",
            actor=validation_type,
            description=f"Validation failed: {'; '.join(error_list[:3])}",
            severity=severity,
            category=AuditCategory.VALIDATION,
            details={"errors": tuple(error_list)},
        )

    @classmethod
    def state_change(
        cls,
        pipeline_id: str,
        change_kind: str,
        description: str,
        old_value: Any = None,
        new_value: Any = None,
    ) -> "AuditEntry":
        details: dict[str, Any] = {"change_kind": change_kind}
        if old_value is not None:
            details["old_value"] = old_value
        if new_value is not None:
            details["new_value"] = new_value
        return cls(
            pipeline_id=pipeline_id,
            action="StateChange",
            actor="StateIntegrator",
            description=description,
            severity=AuditSeverity.INFO,
            category=AuditCategory.STATE_CHANGE,
            details=details,
        )

    @classmethod
    def critical_error(cls, pipeline_id: str, source: str, error: BaseException) -> "AuditEntry":
        return cls(
            pipeline_id=pipeline_id,
            action="CriticalError",
            actor=source,
            description=str(error) or type(error).__name__,
            severity=AuditSeverity.CRITICAL,
            category=AuditCategory.SYSTEM,
            details={"exception_type": type(error).__name__},
        )


@dataclass(frozen=True)
class AuditReport:
    """Aggregated view over a set of audit entries.

    ``pipeline_id`` is None for a global report.
    """

    entries: tuple[AuditEntry, ...]
    pipeline_id: str | None = None

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def counts_by_severity(self) -> dict[AuditSeverity, int]:
        counts = Counter(e.severity for e in self.entries)
        return {severity: counts.get(severity, 0) for severity in AuditSeverity}

    @property
    def counts_by_category(self) -> dict[AuditCategory, int]:
        counts = Counter(e.category for e in self.entries)
        return {category: counts.get(category, 0) for category in AuditCategory}

    @property
    def counts_by_actor(self) -> dict[str, int]:
        return dict(Counter(e.actor for e in self.entries))

    @property
    def critical_count(self) -> int:
        return self.counts_by_severity[AuditSeverity.CRITICAL]

    @property
    def error_count(self) -> int:
        return self.counts_by_severity[AuditSeverity.ERROR]

    @property
    def warning_count(self) -> int:
        return self.counts_by_severity[AuditSeverity.WARNING]

    @property
    def has_problems(self) -> bool:
        """True when any Error or Critical entry is present."""
        return self.critical_count > 0 or self.error_count > 0

    def to_text(self) -> str:
        """Render the report as plain text."""
        title = (
            "Global Audit Report"
            if self.pipeline_id is None
            else f"Audit Report for Pipeline: {self.pipeline_id}"
        )
        lines = [
            title,
            "=" * REPORT_RULE_WIDTH,
            "",
            f"Total Entries: {self.entry_count}",
            f"Critical: {self.critical_count} | Errors: {self.error_count} | Warnings: {self.warning_count}",
            "",
        ]
        if self.entries:
            lines.append("Entries:")
            lines.append("-" * REPORT_RULE_WIDTH)
            for entry in self.entries:
                lines.append(
                    f"{entry.timestamp:%H:%M:%S} {_SEVERITY_MARKS[entry.severity]} "
                    f"[{entry.actor}] {entry.action}: {entry.description}"
                )
        return "\n".join(lines)


class AuditTrail:
    """Thread-safe, capacity-bounded ledger of audit entries.

    Example:
        trail = AuditTrail(capacity=1000)
        trail.record_decision(run_id, "Accept", "verdict valid")
        print(trail.report(run_id).to_text())
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, entry: AuditEntry) -> None:
        """Append an entry, evicting the oldest at capacity. Never raises."""
        if not isinstance(entry, AuditEntry):
            logger.warning("Dropping audit record of unexpected type %s", type(entry).__name__)
            return
        with self._lock:
            self._entries.append(entry)

    def record_decision(self, pipeline_id: str, decision: str, reason: str, **details: Any) -> None:
        self.record(AuditEntry.decision(pipeline_id, decision, reason, details))

    def record_agent_action(
        self,
        pipeline_id: str,
        agent: str,
        action: str,
        description: str,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> None:
        self.record(AuditEntry.agent_action(pipeline_id, agent, action, description, severity))

    def record_validation_failure(
        self,
        pipeline_id: str,
        validation_type: str,
        errors: Iterable[str],
        severity: AuditSeverity = AuditSeverity.WARNING,
    ) -> None:
        self.record(AuditEntry.validation_failure(pipeline_id, validation_type, errors, severity))

    def record_state_change(
        self,
        pipeline_id: str,
        change_kind: str,
        description: str,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self.record(AuditEntry.state_change(pipeline_id, change_kind, description, old_value, new_value))

    def record_critical_error(self, pipeline_id: str, source: str, error: BaseException) -> None:
        self.record(AuditEntry.critical_error(pipeline_id, source, error))

    def _snapshot(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def entries(self, pipeline_id: str | None = None) -> list[AuditEntry]:
        """All entries, oldest first, optionally for one pipeline."""
        entries = self._snapshot()
        if pipeline_id is None:
            return entries
        return [e for e in entries if e.pipeline_id == pipeline_id]

    def by_severity(self, severity: AuditSeverity) -> list[AuditEntry]:
        return [e for e in self._snapshot() if e.severity == severity]

    def by_category(self, category: AuditCategory) -> list[AuditEntry]:
        return [e for e in self._snapshot() if e.category == category]

    def by_action(self, action: str) -> list[AuditEntry]:
        """Entries whose action matches, ignoring case."""
        wanted = action.casefold()
        return [e for e in self._snapshot() if e.action.casefold() == wanted]

    def in_range(self, start: datetime, end: datetime) -> list[AuditEntry]:
        """Entries with start <= timestamp <= end."""
        return [e for e in self._snapshot() if start <= e.timestamp <= end]

    def problems(self) -> list[AuditEntry]:
        """Entries at Warning severity or above."""
        return [e for e in self._snapshot() if e.severity >= AuditSeverity.WARNING]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def report(self, pipeline_id: str) -> AuditReport:
        return AuditReport(tuple(self.entries(pipeline_id)), pipeline_id)

    def global_report(self) -> AuditReport:
        return AuditReport(tuple(self.entries()), None)
