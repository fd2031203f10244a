"""Observability module for narrative pipeline monitoring.

Provides hooks and observers for real-time visibility into pipeline phases,
agent calls, verdicts and rewrite attempts, plus a metrics collector for
stage and agent timings.
"""

from storyloom.observability.events import (
    AgentCallEndEvent,
    AgentCallStartEvent,
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    ValidationEvent,
)
from storyloom.observability.hooks import (
    ObservabilityHook,
    NullHook,
    CompositeHook,
)
from storyloom.observability.metrics import (
    MetricDataPoint,
    MetricKind,
    MetricStatistics,
    MetricsCollector,
    MetricsReport,
    PipelineMetricsSummary,
)
from storyloom.observability.console_observer import RichConsoleObserver, render_audit_report

__all__ = [
    # Events
    "PhaseStartEvent",
    "PhaseEndEvent",
    "AgentCallStartEvent",
    "AgentCallEndEvent",
    "ValidationEvent",
    "RewriteEvent",
    # Hooks
    "ObservabilityHook",
    "NullHook",
    "CompositeHook",
    # Observers
    "RichConsoleObserver",
    "render_audit_report",
    # Metrics
    "MetricsCollector",
    "MetricDataPoint",
    "MetricKind",
    "MetricStatistics",
    "MetricsReport",
    "PipelineMetricsSummary",
]
