"""Rich console observer for real-time pipeline visibility.

Uses the Rich library to render pipeline phases, agent calls, verdicts and
rewrite attempts, plus a table view of audit reports.
"""

from rich.console import Console
from rich.table import Table

from storyloom.audit.trail import AuditReport, AuditSeverity
from storyloom.observability.events import (
    AgentCallEndEvent,
    AgentCallStartEvent,
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    ValidationEvent,
)

_SEVERITY_STYLES = {
    AuditSeverity.DEBUG: "dim",
    AuditSeverity.INFO: "white",
    AuditSeverity.WARNING: "yellow",
    AuditSeverity.ERROR: "red",
    AuditSeverity.CRITICAL: "bold red",
}


class RichConsoleObserver:
    """Pretty console output using Rich.

    Phases are printed on one line each (start, then status and timing);
    agent calls are nested below their phase.
    """

    # Phase icons for visual distinction
    PHASE_ICONS = {
        "context_assembly": "[blue]>[/]",
        "prompt_compilation": "[blue]=[/]",
        "agent_execution": "[cyan]@[/]",
        "validation": "[magenta]#[/]",
        "rewrite": "[yellow]~[/]",
        "integration": "[green]*[/]",
    }

    def __init__(
        self,
        console: Console | None = None,
        show_previews: bool = True,
        indent: str = "  ",
    ) -> None:
        """Initialize the console observer.

        Args:
            console: Rich Console instance. Creates new one if not provided.
            show_previews: Show the start of each agent's text.
            indent: Indentation string for nested output.
        """
        self.console = console or Console()
        self.show_previews = show_previews
        self.indent = indent
        self._phase_times: dict[str, float] = {}

    def on_phase_start(self, event: PhaseStartEvent) -> None:
        """Render phase start."""
        icon = self.PHASE_ICONS.get(event.phase, "[dim]-[/]")
        self.console.print(f"{self.indent}{icon} {event.phase}...")

    def on_phase_end(self, event: PhaseEndEvent) -> None:
        """Render phase completion with timing."""
        status = "[green]done[/]" if event.success else "[red]failed[/]"
        self.console.print(f"{self.indent}{self.indent}{event.phase} {status} ({event.duration_ms:.0f}ms)")
        self._phase_times[event.phase] = self._phase_times.get(event.phase, 0.0) + event.duration_ms

    def on_agent_call_start(self, event: AgentCallStartEvent) -> None:
        attempt_str = f" rewrite #{event.attempt}" if event.attempt else ""
        self.console.print(
            f"{self.indent}{self.indent}[cyan]{event.role}[/] ({event.priority}){attempt_str}"
        )

    def on_agent_call_end(self, event: AgentCallEndEvent) -> None:
        prefix = f"{self.indent}{self.indent}{self.indent}"
        if not event.success:
            self.console.print(
                f"{prefix}[red]x[/] {event.role} failed after {event.duration_ms:.0f}ms: {event.error}"
            )
            return

        preview = ""
        if self.show_previews and event.text_preview:
            preview = f' "{event.text_preview[:40]}..."'
        self.console.print(
            f"{prefix}[green]+[/] {event.completion_tokens} tokens, {event.duration_ms:.0f}ms{preview}"
        )

    def on_validation(self, event: ValidationEvent) -> None:
        """Render a verdict."""
        status = "[green]passed[/]" if event.passed else "[yellow]rejected[/]"
        self.console.print(
            f"{self.indent}[magenta]validation[/] {status} "
            f"({event.attempt}/{event.max_attempts}) "
            f"errors={event.error_count} warnings={event.warning_count}"
        )
        for err in event.errors[:3]:  # Show up to 3 errors
            self.console.print(f"{self.indent}{self.indent}! {err}", style="dim red")

    def on_rewrite(self, event: RewriteEvent) -> None:
        roles = ", ".join(event.roles) or "full re-execution"
        self.console.print(
            f"{self.indent}[yellow]rewrite[/] {event.attempt}/{event.max_attempts}: {roles}"
        )

    def print_timing_summary(self) -> None:
        """Print summary of phase timings."""
        if not self._phase_times:
            return

        self.console.print("\n[bold]Phase Timing Summary:[/]")
        total = 0.0
        for phase, ms in self._phase_times.items():
            self.console.print(f"  {phase}: {ms:.0f}ms")
            total += ms
        self.console.print(f"  [bold]Total: {total:.0f}ms[/]")

    def reset(self) -> None:
        """Reset state for a new run."""
        self._phase_times = {}


def render_audit_report(report: AuditReport, console: Console | None = None) -> Table:
    """Print an audit report as a Rich table and return the table.

    Args:
        report: Report to render.
        console: Console to print to. Creates new one if not provided.

    Returns:
        The rendered table.
    """
    console = console or Console()
    title = (
        "Global Audit Report"
        if report.pipeline_id is None
        else f"Audit Report for Pipeline: {report.pipeline_id}"
    )
    caption = (
        f"Critical: {report.critical_count} | Errors: {report.error_count} "
        f"| Warnings: {report.warning_count}"
    )

    table = Table(title=title, caption=caption)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Actor", style="cyan")
    table.add_column("Action")
    table.add_column("Description")

    for entry in report.entries:
        table.add_row(
            f"{entry.timestamp:%H:%M:%S}",
            entry.severity.name,
            entry.actor,
            entry.action,
            entry.description,
            style=_SEVERITY_STYLES[entry.severity],
        )

    console.print(table)
    return table
