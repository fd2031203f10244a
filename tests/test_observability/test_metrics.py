"""Tests for MetricsCollector and its summaries."""

import pytest

from storyloom.observability import (
    AgentCallEndEvent,
    MetricDataPoint,
    MetricKind,
    MetricsCollector,
    MetricStatistics,
    ObservabilityHook,
    PhaseEndEvent,
    PipelineMetricsSummary,
    RewriteEvent,
)


def _phase(phase: str, duration_ms: float, pipeline_id: str = "run-1") -> PhaseEndEvent:
    return PhaseEndEvent(phase=phase, duration_ms=duration_ms, pipeline_id=pipeline_id)


def _agent(role: str, duration_ms: float, pipeline_id: str = "run-1") -> AgentCallEndEvent:
    return AgentCallEndEvent(role=role, duration_ms=duration_ms, success=True, pipeline_id=pipeline_id)


class TestMetricStatistics:
    """Tests for distribution statistics."""

    def test_calculate(self):
        stats = MetricStatistics.calculate("stage.validation", [float(v) for v in range(1, 101)])

        assert stats.count == 100
        assert stats.minimum == 1.0
        assert stats.maximum == 100.0
        assert stats.average == 50.5
        assert stats.p50 == 50.0
        assert stats.p95 == 95.0
        assert stats.p99 == 99.0

    def test_single_value(self):
        stats = MetricStatistics.calculate("x", [7.0])

        assert stats.p50 == stats.p99 == stats.minimum == 7.0

    def test_empty(self):
        stats = MetricStatistics.calculate("x", [])

        assert stats.count == 0
        assert stats.average == 0.0


class TestPipelineMetricsSummary:
    """Tests for the per-run summary."""

    def test_slowest_stage_and_agent(self):
        summary = PipelineMetricsSummary(
            pipeline_id="run-1",
            total_duration_ms=40.0,
            stage_durations_ms={"validation": 5.0, "agent_execution": 30.0},
            agent_durations_ms={"narrator": 20.0, "character": 25.0},
        )

        assert summary.slowest_stage == "agent_execution"
        assert summary.slowest_agent == "character"
        assert summary.average_stage_duration_ms == 17.5

    def test_empty_run(self):
        summary = PipelineMetricsSummary(pipeline_id="run-1", total_duration_ms=0.0)

        assert summary.slowest_stage is None
        assert summary.slowest_agent is None
        assert summary.average_stage_duration_ms == 0.0

    def test_durations_are_read_only(self):
        summary = PipelineMetricsSummary("run-1", 1.0, stage_durations_ms={"validation": 1.0})

        with pytest.raises(TypeError):
            summary.stage_durations_ms["validation"] = 2.0

    def test_as_dict(self):
        summary = PipelineMetricsSummary("run-1", 12.0, agent_durations_ms={"narrator": 10.0}, agent_calls=1)

        values = summary.as_dict()

        assert values["agent_durations_ms"] == {"narrator": 10.0}
        assert values["slowest_agent"] == "narrator"
        assert values["agent_calls"] == 1


class TestMetricsCollector:
    """Tests for collecting timings from hook events."""

    def test_satisfies_hook_protocol(self):
        assert isinstance(MetricsCollector(), ObservabilityHook)

    def test_run_summary_sums_repeated_stages_and_roles(self):
        metrics = MetricsCollector()
        metrics.start_pipeline("run-1")
        metrics.on_phase_end(_phase("validation", 4.0))
        metrics.on_phase_end(_phase("validation", 6.0))
        metrics.on_phase_end(_phase("agent_execution", 30.0))
        metrics.on_agent_call_end(_agent("narrator", 12.0))
        metrics.on_agent_call_end(_agent("narrator", 8.0))
        metrics.on_rewrite(RewriteEvent(attempt=1, max_attempts=2, roles=["narrator"], pipeline_id="run-1"))

        summary = metrics.end_pipeline("run-1", success=True)

        assert summary.stage_durations_ms == {"validation": 10.0, "agent_execution": 30.0}
        assert summary.agent_durations_ms == {"narrator": 20.0}
        assert summary.agent_calls == 2
        assert summary.rewrite_count == 1
        assert summary.total_duration_ms >= 0
        assert summary.slowest_stage == "agent_execution"

    def test_concurrent_runs_are_kept_apart(self):
        metrics = MetricsCollector()
        metrics.start_pipeline("a")
        metrics.start_pipeline("b")
        metrics.on_agent_call_end(_agent("narrator", 5.0, pipeline_id="a"))
        metrics.on_agent_call_end(_agent("summary", 7.0, pipeline_id="b"))

        assert metrics.end_pipeline("a", success=True).agent_durations_ms == {"narrator": 5.0}
        assert metrics.end_pipeline("b", success=True).agent_durations_ms == {"summary": 7.0}

    def test_events_for_unknown_runs_are_ignored(self):
        metrics = MetricsCollector()

        metrics.on_phase_end(_phase("validation", 4.0, pipeline_id="elsewhere"))
        metrics.on_agent_call_end(_agent("narrator", 4.0, pipeline_id="elsewhere"))

        assert metrics.data_points() == []

    def test_ending_unknown_run_raises(self):
        with pytest.raises(KeyError):
            MetricsCollector().end_pipeline("never-started", success=True)

    def test_report(self):
        metrics = MetricsCollector()
        for run_id, success in (("a", True), ("b", False)):
            metrics.start_pipeline(run_id)
            metrics.on_agent_call_end(_agent("narrator", 10.0, pipeline_id=run_id))
            metrics.end_pipeline(run_id, success=success)

        report = metrics.report()
        text = report.to_text()

        assert report.pipelines_completed == 1
        assert report.pipelines_failed == 1
        assert report.get("agent.narrator").count == 2
        assert report.get("pipeline.total").count == 2
        assert report.get("stage.missing") is None
        assert text.startswith("Metrics Report")
        assert "Agent:" in text
        assert "agent.narrator: n=2 avg=10.0" in text

    def test_statistics_for_one_metric(self):
        metrics = MetricsCollector()
        metrics.record(MetricDataPoint("cache.size", 3.0, MetricKind.GAUGE))
        metrics.record(MetricDataPoint("cache.size", 5.0, MetricKind.GAUGE))

        stats = metrics.statistics("cache.size")

        assert stats.count == 2
        assert stats.average == 4.0
        assert metrics.metric_names() == ["cache.size"]

    def test_data_points_are_bounded(self):
        metrics = MetricsCollector(max_data_points=3)
        for value in range(5):
            metrics.record(MetricDataPoint("x", float(value)))

        assert [p.value for p in metrics.data_points("x")] == [2.0, 3.0, 4.0]

    def test_clear(self):
        metrics = MetricsCollector()
        metrics.record(MetricDataPoint("x", 1.0))
        metrics.start_pipeline("run-1")

        metrics.clear()

        assert metrics.data_points() == []
        assert metrics.active_pipelines == ["run-1"]

    def test_non_positive_capacity_raises(self):
        with pytest.raises(ValueError):
            MetricsCollector(max_data_points=0)
