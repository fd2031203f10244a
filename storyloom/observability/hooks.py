"""Hook protocol the pipeline reports through, plus two stock hooks.

Hooks are called synchronously from the pipeline; an exception raised by a
hook propagates to the caller of ``submit``.
"""

from typing import Iterable, Protocol, runtime_checkable

from storyloom.observability.events import (
    AgentCallEndEvent,
    AgentCallStartEvent,
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    ValidationEvent,
)


@runtime_checkable
class ObservabilityHook(Protocol):
    """Receiver for pipeline progress events.

    Phase events bracket each stage of a run (context_assembly,
    prompt_compilation, agent_execution, validation, rewrite, integration).
    Agent call events bracket each backend invocation, including those made
    during rewrites.
    """

    def on_phase_start(self, event: PhaseStartEvent) -> None: ...

    def on_phase_end(self, event: PhaseEndEvent) -> None: ...

    def on_agent_call_start(self, event: AgentCallStartEvent) -> None: ...

    def on_agent_call_end(self, event: AgentCallEndEvent) -> None: ...

    def on_validation(self, event: ValidationEvent) -> None:
        """One call per verdict, accepted or not."""
        ...

    def on_rewrite(self, event: RewriteEvent) -> None: ...


class NullHook:
    """Discards everything. Used when no hook is configured."""

    def on_phase_start(self, event: PhaseStartEvent) -> None:
        pass

    def on_phase_end(self, event: PhaseEndEvent) -> None:
        pass

    def on_agent_call_start(self, event: AgentCallStartEvent) -> None:
        pass

    def on_agent_call_end(self, event: AgentCallEndEvent) -> None:
        pass

    def on_validation(self, event: ValidationEvent) -> None:
        pass

    def on_rewrite(self, event: RewriteEvent) -> None:
        pass


class CompositeHook:
    """Fans each event out to several hooks, in registration order."""

    def __init__(self, hooks: Iterable[ObservabilityHook] = ()) -> None:
        self.hooks = list(hooks)

    def add(self, hook: ObservabilityHook) -> None:
        self.hooks.append(hook)

    def _dispatch(self, method: str, event: object) -> None:
        for hook in self.hooks:
            getattr(hook, method)(event)

    def on_phase_start(self, event: PhaseStartEvent) -> None:
        self._dispatch("on_phase_start", event)

    def on_phase_end(self, event: PhaseEndEvent) -> None:
        self._dispatch("on_phase_end", event)

    def on_agent_call_start(self, event: AgentCallStartEvent) -> None:
        self._dispatch("on_agent_call_start", event)

    def on_agent_call_end(self, event: AgentCallEndEvent) -> None:
        self._dispatch("on_agent_call_end", event)

    def on_validation(self, event: ValidationEvent) -> None:
        self._dispatch("on_validation", event)

    def on_rewrite(self, event: RewriteEvent) -> None:
        self._dispatch("on_rewrite", event)
