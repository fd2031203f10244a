"""Timing metrics for pipeline runs, collected from hook events.

MetricsCollector is an ObservabilityHook. A run is bracketed with
``start_pipeline`` and ``end_pipeline``; the latter returns a
PipelineMetricsSummary of stage and agent durations for that run. Events for
runs that were never started are ignored.

Every stage and agent duration is also kept as a data point (bounded, oldest
evicted first) so statistics can be computed across runs.
"""

import logging
import math
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from storyloom.observability.events import (
    AgentCallEndEvent,
    AgentCallStartEvent,
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    ValidationEvent,
)

logger = logging.getLogger(__name__)

MAX_DATA_POINTS = 100_000
REPORT_RULE_WIDTH = 60

# Data point names are "<group>.<name>"
STAGE_PREFIX = "stage."
AGENT_PREFIX = "agent."
PIPELINE_TOTAL = "pipeline.total"
PIPELINE_REWRITES = "pipeline.rewrites"


class MetricKind(str, Enum):
    DURATION = "duration"
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDataPoint:
    """One measurement. Durations are in milliseconds."""

    name: str
    value: float
    kind: MetricKind = MetricKind.DURATION
    pipeline_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


def percentile(ordered: list[float], p: float) -> float:
    """Nearest-rank percentile of an already sorted, non-empty list."""
    index = math.ceil(p * len(ordered) / 100) - 1
    return ordered[min(max(index, 0), len(ordered) - 1)]


@dataclass(frozen=True)
class MetricStatistics:
    """Distribution of one metric's values."""

    name: str
    count: int = 0
    minimum: float = 0.0
    maximum: float = 0.0
    average: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    @classmethod
    def calculate(cls, name: str, values: Iterable[float]) -> "MetricStatistics":
        ordered = sorted(values)
        if not ordered:
            return cls(name)
        return cls(
            name=name,
            count=len(ordered),
            minimum=ordered[0],
            maximum=ordered[-1],
            average=sum(ordered) / len(ordered),
            p50=percentile(ordered, 50),
            p95=percentile(ordered, 95),
            p99=percentile(ordered, 99),
        )


@dataclass(frozen=True)
class PipelineMetricsSummary:
    """Timings for one run.

    Stage durations are summed per phase name, so a run with two validations
    reports their combined time under "validation". Agent durations are
    summed per role across the first execution and every rewrite.

    Attributes:
        pipeline_id: Run id.
        total_duration_ms: Wall time from start_pipeline to end_pipeline.
        stage_durations_ms: Phase name to summed duration.
        agent_durations_ms: Role name to summed call duration.
        agent_calls: Backend invocations made.
        rewrite_count: Rewrite passes started.
        success: Whether the run produced a delta.
    """

    pipeline_id: str
    total_duration_ms: float
    stage_durations_ms: Mapping[str, float] = field(default_factory=dict)
    agent_durations_ms: Mapping[str, float] = field(default_factory=dict)
    agent_calls: int = 0
    rewrite_count: int = 0
    success: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "stage_durations_ms", MappingProxyType(dict(self.stage_durations_ms)))
        object.__setattr__(self, "agent_durations_ms", MappingProxyType(dict(self.agent_durations_ms)))

    @property
    def average_stage_duration_ms(self) -> float:
        if not self.stage_durations_ms:
            return 0.0
        return sum(self.stage_durations_ms.values()) / len(self.stage_durations_ms)

    @property
    def slowest_stage(self) -> str | None:
        if not self.stage_durations_ms:
            return None
        return max(self.stage_durations_ms, key=self.stage_durations_ms.__getitem__)

    @property
    def slowest_agent(self) -> str | None:
        if not self.agent_durations_ms:
            return None
        return max(self.agent_durations_ms, key=self.agent_durations_ms.__getitem__)

    def as_dict(self) -> dict[str, Any]:
        """Plain values, for delta metadata and logs."""
        return {
            "total_duration_ms": self.total_duration_ms,
            "stage_durations_ms": dict(self.stage_durations_ms),
            "agent_durations_ms": dict(self.agent_durations_ms),
            "agent_calls": self.agent_calls,
            "rewrite_count": self.rewrite_count,
            "success": self.success,
            "slowest_stage": self.slowest_stage,
            "slowest_agent": self.slowest_agent,
        }


@dataclass(frozen=True)
class MetricsReport:
    """Statistics for every metric seen, plus run counts."""

    statistics: tuple[MetricStatistics, ...] = ()
    pipelines_completed: int = 0
    pipelines_failed: int = 0

    def get(self, name: str) -> MetricStatistics | None:
        for stats in self.statistics:
            if stats.name == name:
                return stats
        return None

    def to_text(self) -> str:
        """Render as plain text, one section per metric group."""
        lines = [
            "Metrics Report",
            "=" * REPORT_RULE_WIDTH,
            "",
            f"Pipelines: {self.pipelines_completed} completed | {self.pipelines_failed} failed",
        ]
        groups: dict[str, list[MetricStatistics]] = defaultdict(list)
        for stats in self.statistics:
            group, _, _ = stats.name.partition(".")
            groups[group].append(stats)
        for group in sorted(groups):
            lines.append("")
            lines.append(f"{group.capitalize()}:")
            lines.append("-" * REPORT_RULE_WIDTH)
            for stats in groups[group]:
                lines.append(
                    f"{stats.name}: n={stats.count} avg={stats.average:.1f} "
                    f"min={stats.minimum:.1f} max={stats.maximum:.1f} "
                    f"p50={stats.p50:.1f} p95={stats.p95:.1f} p99={stats.p99:.1f}"
                )
        return "\n".join(lines)


@dataclass
class _RunTimings:
    pipeline_id: str
    started: float = field(default_factory=time.perf_counter)
    stage_durations_ms: dict[str, float] = field(default_factory=dict)
    agent_durations_ms: dict[str, float] = field(default_factory=dict)
    agent_calls: int = 0
    rewrite_count: int = 0


class MetricsCollector:
    """Thread-safe collector of per-run and cross-run timings.

    Example:
        metrics = MetricsCollector()
        pipeline = NarrativePipeline(generator, metrics=metrics)
        await pipeline.submit(state, intent)
        print(metrics.report().to_text())
    """

    def __init__(self, max_data_points: int = MAX_DATA_POINTS) -> None:
        if max_data_points <= 0:
            raise ValueError("max_data_points must be positive")
        self._data_points: deque[MetricDataPoint] = deque(maxlen=max_data_points)
        self._runs: dict[str, _RunTimings] = {}
        self._completed = 0
        self._failed = 0
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def start_pipeline(self, pipeline_id: str) -> None:
        with self._lock:
            self._runs[pipeline_id] = _RunTimings(pipeline_id)

    def end_pipeline(self, pipeline_id: str, success: bool) -> PipelineMetricsSummary:
        """Close a run and return its summary.

        Raises:
            KeyError: If the run was never started or already ended.
        """
        with self._lock:
            run = self._runs.pop(pipeline_id)
            total_ms = (time.perf_counter() - run.started) * 1000
            self._data_points.append(MetricDataPoint(PIPELINE_TOTAL, total_ms, pipeline_id=pipeline_id))
            if success:
                self._completed += 1
            else:
                self._failed += 1

        summary = PipelineMetricsSummary(
            pipeline_id=pipeline_id,
            total_duration_ms=total_ms,
            stage_durations_ms=run.stage_durations_ms,
            agent_durations_ms=run.agent_durations_ms,
            agent_calls=run.agent_calls,
            rewrite_count=run.rewrite_count,
            success=success,
        )
        logger.debug(
            "Run %s took %.1fms, slowest stage %s, slowest agent %s",
            pipeline_id,
            total_ms,
            summary.slowest_stage,
            summary.slowest_agent,
        )
        return summary

    @property
    def active_pipelines(self) -> list[str]:
        with self._lock:
            return list(self._runs)

    # -------------------------------------------------------------------------
    # Hook interface
    # -------------------------------------------------------------------------

    def on_phase_start(self, event: PhaseStartEvent) -> None:
        pass

    def on_phase_end(self, event: PhaseEndEvent) -> None:
        with self._lock:
            run = self._runs.get(event.pipeline_id)
            if run is None:
                return
            durations = run.stage_durations_ms
            durations[event.phase] = durations.get(event.phase, 0.0) + event.duration_ms
            self._data_points.append(
                MetricDataPoint(STAGE_PREFIX + event.phase, event.duration_ms, pipeline_id=event.pipeline_id)
            )

    def on_agent_call_start(self, event: AgentCallStartEvent) -> None:
        pass

    def on_agent_call_end(self, event: AgentCallEndEvent) -> None:
        with self._lock:
            run = self._runs.get(event.pipeline_id)
            if run is None:
                return
            durations = run.agent_durations_ms
            durations[event.role] = durations.get(event.role, 0.0) + event.duration_ms
            run.agent_calls += 1
            self._data_points.append(
                MetricDataPoint(AGENT_PREFIX + event.role, event.duration_ms, pipeline_id=event.pipeline_id)
            )

    def on_validation(self, event: ValidationEvent) -> None:
        pass

    def on_rewrite(self, event: RewriteEvent) -> None:
        with self._lock:
            run = self._runs.get(event.pipeline_id)
            if run is None:
                return
            run.rewrite_count += 1
            self._data_points.append(
                MetricDataPoint(PIPELINE_REWRITES, 1, MetricKind.COUNTER, pipeline_id=event.pipeline_id)
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def record(self, point: MetricDataPoint) -> None:
        """Add a caller-supplied data point."""
        with self._lock:
            self._data_points.append(point)

    def data_points(self, name: str | None = None) -> list[MetricDataPoint]:
        with self._lock:
            points = list(self._data_points)
        if name is None:
            return points
        return [p for p in points if p.name == name]

    def metric_names(self) -> list[str]:
        with self._lock:
            return sorted({p.name for p in self._data_points})

    def statistics(self, name: str) -> MetricStatistics:
        return MetricStatistics.calculate(name, (p.value for p in self.data_points(name)))

    def report(self) -> MetricsReport:
        with self._lock:
            points = list(self._data_points)
            completed, failed = self._completed, self._failed
        values: dict[str, list[float]] = defaultdict(list)
        for point in points:
            values[point.name].append(point.value)
        return MetricsReport(
            statistics=tuple(MetricStatistics.calculate(name, values[name]) for name in sorted(values)),
            pipelines_completed=completed,
            pipelines_failed=failed,
        )

    def clear(self) -> None:
        """Drop data points and counts. Runs in progress keep their timings."""
        with self._lock:
            self._data_points.clear()
            self._completed = 0
            self._failed = 0
