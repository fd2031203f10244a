"""Tests for observability hooks and the Rich console observer."""

import io

from rich.console import Console
from rich.table import Table

from storyloom.audit.trail import AuditSeverity, AuditTrail
from storyloom.observability import (
    AgentCallEndEvent,
    AgentCallStartEvent,
    CompositeHook,
    NullHook,
    ObservabilityHook,
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    RichConsoleObserver,
    ValidationEvent,
    render_audit_report,
)
from tests.factories import RecordingHook


def _console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)


class TestHooks:
    """Tests for NullHook and CompositeHook."""

    def test_implementations_satisfy_protocol(self):
        assert isinstance(NullHook(), ObservabilityHook)
        assert isinstance(CompositeHook([]), ObservabilityHook)
        assert isinstance(RichConsoleObserver(_console()), ObservabilityHook)

    def test_null_hook_accepts_events(self):
        hook = NullHook()
        hook.on_phase_start(PhaseStartEvent(phase="validation"))
        hook.on_rewrite(RewriteEvent(attempt=1, max_attempts=2, roles=[]))

    def test_composite_dispatches_to_all(self):
        first, second = RecordingHook(), RecordingHook()
        composite = CompositeHook([first, second])

        composite.on_phase_start(PhaseStartEvent(phase="validation"))
        composite.on_validation(ValidationEvent(attempt=1, max_attempts=3, passed=True))

        assert [name for name, _ in first.events] == ["phase_start", "validation"]
        assert first.events == second.events

    def test_composite_add_appends_hook(self):
        composite = CompositeHook()
        late = RecordingHook()
        composite.add(late)

        composite.on_rewrite(RewriteEvent(attempt=1, max_attempts=2, roles=["narrator"]))

        assert [name for name, _ in late.events] == ["rewrite"]


class TestRichConsoleObserver:
    """Tests for console rendering."""

    def test_renders_a_run(self):
        console = _console()
        observer = RichConsoleObserver(console)

        observer.on_phase_start(PhaseStartEvent(phase="agent_execution"))
        observer.on_agent_call_start(AgentCallStartEvent(role="narrator", priority="required"))
        observer.on_agent_call_end(
            AgentCallEndEvent(
                role="narrator",
                duration_ms=120,
                success=True,
                completion_tokens=42,
                text_preview="Rain drummed on the tavern roof",
            )
        )
        observer.on_agent_call_end(
            AgentCallEndEvent(role="summary", duration_ms=5, success=False, error="timeout")
        )
        observer.on_phase_end(PhaseEndEvent(phase="agent_execution", duration_ms=130))
        observer.on_validation(
            ValidationEvent(attempt=1, max_attempts=3, passed=False, error_count=1, errors=["[CRITICAL] empty"])
        )
        observer.on_rewrite(RewriteEvent(attempt=1, max_attempts=2, roles=[]))

        output = console.file.getvalue()
        assert "agent_execution..." in output
        assert "narrator (required)" in output
        assert "42 tokens" in output
        assert '"Rain drummed on the tavern roof..."' in output
        assert "summary failed after 5ms: timeout" in output
        assert "validation rejected (1/3)" in output
        assert "[CRITICAL] empty" in output
        assert "rewrite 1/2: full re-execution" in output

    def test_previews_can_be_hidden(self):
        console = _console()
        observer = RichConsoleObserver(console, show_previews=False)

        observer.on_agent_call_end(
            AgentCallEndEvent(role="narrator", duration_ms=1, success=True, text_preview="secret text")
        )

        assert "secret text" not in console.file.getvalue()

    def test_timing_summary_and_reset(self):
        console = _console()
        observer = RichConsoleObserver(console)
        observer.on_phase_end(PhaseEndEvent(phase="validation", duration_ms=10))
        observer.on_phase_end(PhaseEndEvent(phase="validation", duration_ms=15))

        observer.print_timing_summary()

        output = console.file.getvalue()
        assert "validation: 25ms" in output
        assert "Total: 25ms" in output

        observer.reset()
        before = console.file.getvalue()
        observer.print_timing_summary()
        assert console.file.getvalue() == before


class TestRenderAuditReport:
    """Tests for the audit report table."""

    def test_table_rows(self):
        trail = AuditTrail(capacity=10)
        trail.record_decision("run-1", "Accept", "ok")
        trail.record_agent_action("run-1", "narrator", "GenerateFailed", "timeout", AuditSeverity.WARNING)
        console = _console()

        table = render_audit_report(trail.report("run-1"), console)

        assert isinstance(table, Table)
        assert table.row_count == 2
        output = console.file.getvalue()
        assert "Audit Report for Pipeline: run-1" in output
        assert "GenerateFailed" in output
        assert "Warnings: 1" in output
