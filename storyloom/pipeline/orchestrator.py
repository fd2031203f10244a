"""Pipeline orchestration: the caller entry point.

    assemble context -> compile prompts -> execute -> validate
        -> (rewrite -> validate)* -> integrate

The rewrite loop is bounded by RewritePolicy.max_attempts. Running out of
attempts with an invalid verdict yields a PipelineFailure value.

Timeouts are cooperative: an expired stage or run timeout sets the cancel
event the executor races agent calls against, so in-flight calls end as
failed responses and the verdict decides the outcome.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from types import TracebackType
from typing import Any, Iterator
from uuid import uuid4

from storyloom.audit.trail import AuditReport, AuditSeverity, AuditTrail
from storyloom.config import Settings, get_settings
from storyloom.observability.events import (
    PhaseEndEvent,
    PhaseStartEvent,
    RewriteEvent,
    ValidationEvent,
)
from storyloom.observability.hooks import CompositeHook, NullHook, ObservabilityHook
from storyloom.observability.metrics import MetricsCollector, PipelineMetricsSummary
from storyloom.pipeline.context_assembler import ContextAssembler
from storyloom.pipeline.executor import AgentExecutor
from storyloom.pipeline.generation import (
    GenerationCapability,
    GenerationParameters,
    create_role_generator,
)
from storyloom.pipeline.integrator import StateIntegrator
from storyloom.pipeline.intent import NarrativeIntent
from storyloom.pipeline.pacing import LatencyPacing, PacingPolicy
from storyloom.pipeline.prompt_compiler import PromptCompiler
from storyloom.pipeline.schemas import ErrorSeverity, NarrativeDelta, ValidationVerdict
from storyloom.pipeline.state import NarrativeStateProvider
from storyloom.pipeline.validator import OutputValidator, ValidatorConfig

logger = logging.getLogger(__name__)

ORCHESTRATOR = "Orchestrator"


@dataclass(frozen=True)
class RewritePolicy:
    """When and how often the pipeline asks agents to revise their output.

    Attributes:
        max_attempts: Rewrite attempts allowed after the first execution.
        rewrite_on_major: Also rewrite when only Major errors are present.
    """

    max_attempts: int = 2
    rewrite_on_major: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RewritePolicy":
        return cls(
            max_attempts=settings.max_rewrite_attempts,
            rewrite_on_major=settings.rewrite_on_major,
        )

    def needs_rewrite(self, verdict: ValidationVerdict) -> bool:
        if not verdict.is_valid:
            return True
        return self.rewrite_on_major and verdict.has_major


@dataclass(frozen=True)
class PipelineFailure:
    """Returned by ``submit`` when no acceptable output was produced.

    Attributes:
        pipeline_id: Run id; audit entries for the run share it.
        reason: Human-readable summary.
        verdict: The last verdict.
        attempts: Rewrite attempts made.
        report: Audit report for the run.
        metrics: Stage and agent timings for the run.
        timed_out: Whether the run timeout expired.
    """

    pipeline_id: str
    reason: str
    verdict: ValidationVerdict
    attempts: int
    report: AuditReport
    metrics: PipelineMetricsSummary | None = None
    timed_out: bool = False

    @property
    def critical_errors(self) -> list[str]:
        return [e.message for e in self.verdict.errors if e.severity == ErrorSeverity.CRITICAL]


class _CancelScope:
    """A cancel event set when its parent is set or its timeout expires."""

    def __init__(self, parent: asyncio.Event | None, timeout: float | None) -> None:
        self.parent = parent
        self.timeout = timeout
        self.event = asyncio.Event()
        self.expired = False
        self._timer: asyncio.TimerHandle | None = None
        self._forwarder: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "_CancelScope":
        if self.parent is not None:
            if self.parent.is_set():
                self.event.set()
            else:
                self._forwarder = asyncio.create_task(self._forward(self.parent))
        if self.timeout is not None:
            self._timer = asyncio.get_running_loop().call_later(self.timeout, self._expire)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._timer is not None:
            self._timer.cancel()
        if self._forwarder is not None:
            self._forwarder.cancel()

    async def _forward(self, parent: asyncio.Event) -> None:
        await parent.wait()
        self.event.set()

    def _expire(self) -> None:
        self.expired = True
        self.event.set()


def _positive_or_none(value: float | None, name: str) -> float | None:
    if value is not None and value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


class NarrativePipeline:
    """Runs one narrative beat end to end.

    Example:
        pipeline = NarrativePipeline(ScriptedGenerator(), audit=AuditTrail())
        result = await pipeline.submit(state, NarrativeIntent.continue_story())
        if isinstance(result, PipelineFailure):
            print(result.report.to_text())
        else:
            state.apply_changes(result.state_changes)
    """

    def __init__(
        self,
        generator: GenerationCapability,
        audit: AuditTrail | None = None,
        settings: Settings | None = None,
        policy: RewritePolicy | None = None,
        validator_config: ValidatorConfig | None = None,
        pacing: PacingPolicy | None = None,
        hook: ObservabilityHook | None = None,
        parameters: GenerationParameters | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Wire the pipeline stages.

        Args:
            generator: Backend used for every agent call.
            audit: Shared audit trail (a private one sized from settings
                is created when omitted).
            settings: Source of defaults.
            policy: Rewrite policy (defaults from settings).
            validator_config: Validator thresholds (defaults from settings).
            pacing: Time-advance policy (latency-based by default).
            hook: Observability hook.
            parameters: Sampling parameters sent with each request.
            metrics: Shared metrics collector (a private one is created
                when omitted). It receives every hook event.

        Raises:
            ValueError: If a configured timeout is not positive.
        """
        settings = settings or get_settings()
        self.settings = settings
        self.audit = audit if audit is not None else AuditTrail(capacity=settings.audit_capacity)
        self.policy = policy or RewritePolicy.from_settings(settings)
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.hook = CompositeHook([self.metrics, hook or NullHook()])
        self.pipeline_timeout = _positive_or_none(settings.pipeline_timeout_seconds, "pipeline_timeout_seconds")
        self.stage_timeout = _positive_or_none(settings.stage_timeout_seconds, "stage_timeout_seconds")

        self.assembler = ContextAssembler(event_window=settings.recent_event_window)
        self.compiler = PromptCompiler(consistency_check=settings.consistency_check)
        self.executor = AgentExecutor(generator, parameters=parameters, hook=self.hook, audit=self.audit)
        self.validator = OutputValidator(validator_config or ValidatorConfig.from_settings(settings))
        self.integrator = StateIntegrator(
            pacing=pacing or LatencyPacing(settings.pacing_scale),
            audit=self.audit,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        audit: AuditTrail | None = None,
        hook: ObservabilityHook | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "NarrativePipeline":
        """Build a pipeline whose roles use the configured provider:model backends."""
        settings = settings or get_settings()
        return cls(
            create_role_generator(settings),
            audit=audit,
            settings=settings,
            hook=hook,
            parameters=GenerationParameters.from_settings(settings),
            metrics=metrics,
        )

    @contextmanager
    def _phase(self, phase: str, pipeline_id: str) -> Iterator[dict[str, Any]]:
        """Emit start/end events around a stage.

        The body may set ``outcome["success"] = False`` to flag the phase.
        """
        self.hook.on_phase_start(PhaseStartEvent(phase=phase, pipeline_id=pipeline_id))
        outcome: dict[str, Any] = {"success": True}
        start_time = time.perf_counter()
        try:
            yield outcome
        except BaseException:
            outcome["success"] = False
            raise
        finally:
            self.hook.on_phase_end(
                PhaseEndEvent(
                    phase=phase,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    success=outcome.pop("success"),
                    pipeline_id=pipeline_id,
                    details=outcome,
                )
            )

    async def submit(
        self,
        state: NarrativeStateProvider,
        intent: NarrativeIntent,
        max_rewrite_attempts: int | None = None,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> NarrativeDelta | PipelineFailure:
        """Produce a narrative delta for one intent.

        Args:
            state: Narrative state to read.
            intent: The requested beat.
            max_rewrite_attempts: Overrides the policy's attempt bound.
            cancel_event: Cancels in-flight agent calls when set; cancelled
                calls count as failed responses.
            timeout_seconds: Overrides the configured run timeout.

        Returns:
            The delta, or a PipelineFailure carrying the last verdict. Either
            way the run's timings are attached (``metadata["metrics"]`` on a
            delta, ``metrics`` on a failure).

        Raises:
            ValueError: If state or intent is missing, max_rewrite_attempts
                is negative, or timeout_seconds is not positive.
        """
        if state is None:
            raise ValueError("state is required")
        if intent is None:
            raise ValueError("intent is required")
        policy = self.policy
        if max_rewrite_attempts is not None:
            policy = replace(policy, max_attempts=max_rewrite_attempts)
        timeout = self.pipeline_timeout
        if timeout_seconds is not None:
            timeout = _positive_or_none(timeout_seconds, "timeout_seconds")

        run_id = str(uuid4())
        self.metrics.start_pipeline(run_id)
        try:
            async with _CancelScope(cancel_event, timeout) as scope:
                result = await self._run(run_id, state, intent, policy, scope)
        except BaseException:
            self.metrics.end_pipeline(run_id, success=False)
            raise

        summary = self.metrics.end_pipeline(run_id, success=isinstance(result, NarrativeDelta))
        if isinstance(result, PipelineFailure):
            return replace(result, metrics=summary)
        return replace(result, metadata={**result.metadata, "metrics": summary.as_dict()})

    async def _run(
        self,
        run_id: str,
        state: NarrativeStateProvider,
        intent: NarrativeIntent,
        policy: RewritePolicy,
        scope: _CancelScope,
    ) -> NarrativeDelta | PipelineFailure:
        self.audit.record_decision(
            run_id,
            "PipelineStarted",
            f"intent {intent.kind_name}, up to {policy.max_attempts} rewrite(s)",
        )

        try:
            with self._phase("context_assembly", run_id):
                context = self.assembler.assemble(state, intent, run_id=run_id)
            with self._phase("prompt_compilation", run_id):
                prompt_set = self.compiler.compile(context, intent)
        except ValueError as e:
            self.audit.record_critical_error(run_id, ORCHESTRATOR, e)
            raise

        skipped = context.metadata.get("skipped_targets", ())
        if skipped:
            self.audit.record_decision(
                run_id,
                "TargetsSkipped",
                f"unknown target(s) ignored: {', '.join(skipped)}",
            )
        self.audit.record_decision(
            run_id,
            "PromptsCompiled",
            f"{len(prompt_set)} prompt(s) for {', '.join(r.value for r in prompt_set.roles)} "
            f"under {prompt_set.order.value} order",
        )

        with self._phase("agent_execution", run_id) as outcome:
            async with _CancelScope(scope.event, self.stage_timeout) as stage:
                raw = await self.executor.execute(prompt_set, context, stage.event)
            self._note_stage_timeout(run_id, "agent_execution", stage)
            outcome["success"] = raw.any_successful

        attempt = 0
        while True:
            with self._phase("validation", run_id) as outcome:
                verdict = self.validator.validate(raw, context)
                outcome["success"] = verdict.is_valid
            self._record_verdict(run_id, verdict, attempt, policy)

            if not policy.needs_rewrite(verdict):
                break
            if attempt >= policy.max_attempts:
                break
            if scope.event.is_set():
                self._record_stop(run_id, scope)
                break

            attempt += 1
            roles = [r.role for r in raw.successful_responses]
            reason = "invalid output" if not verdict.is_valid else "major findings"
            self.hook.on_rewrite(
                RewriteEvent(
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    roles=[r.value for r in roles],
                    reason=reason,
                    pipeline_id=run_id,
                )
            )
            with self._phase("rewrite", run_id) as outcome:
                async with _CancelScope(scope.event, self.stage_timeout) as stage:
                    if roles:
                        self.audit.record_decision(
                            run_id,
                            "Rewrite",
                            f"attempt {attempt} for {', '.join(r.value for r in roles)} ({reason})",
                        )
                        raw = await self.executor.rewrite(raw, verdict, context, stage.event, attempt)
                    else:
                        # Nothing succeeded, so there is nothing to revise
                        self.audit.record_decision(
                            run_id,
                            "Reexecute",
                            f"attempt {attempt}: no successful output to revise",
                        )
                        fresh = await self.executor.execute(prompt_set, context, stage.event)
                        raw = replace(
                            fresh,
                            total_duration_seconds=raw.total_duration_seconds + fresh.total_duration_seconds,
                        )
                self._note_stage_timeout(run_id, "rewrite", stage)
                outcome["success"] = raw.any_successful

        if not verdict.is_valid:
            reason = (
                f"Output rejected after {attempt} rewrite attempt(s): "
                + "; ".join(e.message for e in verdict.errors if e.severity == ErrorSeverity.CRITICAL)
            )
            if scope.expired:
                reason = f"Pipeline timed out after {scope.timeout}s. {reason}"
            self.audit.record_decision(run_id, "Reject", reason)
            logger.error("Pipeline %s failed: %s", run_id, reason)
            return PipelineFailure(
                pipeline_id=run_id,
                reason=reason,
                verdict=verdict,
                attempts=attempt,
                report=self.audit.report(run_id),
                timed_out=scope.expired,
            )

        with self._phase("integration", run_id):
            delta = self.integrator.integrate(raw, context)
        delta = replace(
            delta,
            metadata={**delta.metadata, "pipeline_id": run_id, "rewrite_attempts": attempt},
        )
        self.audit.record_decision(
            run_id,
            "Accept",
            f"{len(delta.text)} chars after {attempt} rewrite attempt(s)",
        )
        return delta

    def _note_stage_timeout(self, run_id: str, phase: str, stage: _CancelScope) -> None:
        if not stage.expired:
            return
        logger.warning("Stage %s of %s timed out after %.2fs", phase, run_id, stage.timeout)
        self.audit.record_decision(run_id, "StageTimeout", f"{phase} exceeded {stage.timeout}s")

    def _record_stop(self, run_id: str, scope: _CancelScope) -> None:
        if scope.expired:
            logger.warning("Pipeline %s timed out after %.2fs", run_id, scope.timeout)
            self.audit.record_decision(run_id, "Timeout", f"run exceeded {scope.timeout}s, no further rewrites")
        else:
            self.audit.record_decision(run_id, "Cancelled", "cancel event set, no further rewrites")

    def _record_verdict(
        self,
        run_id: str,
        verdict: ValidationVerdict,
        attempt: int,
        policy: RewritePolicy,
    ) -> None:
        self.hook.on_validation(
            ValidationEvent(
                attempt=attempt + 1,
                max_attempts=policy.max_attempts + 1,
                passed=verdict.is_valid,
                error_count=len(verdict.errors),
                warning_count=len(verdict.warnings),
                errors=[str(e) for e in verdict.errors],
                pipeline_id=run_id,
            )
        )

        if not verdict.is_valid:
            logger.warning("Verdict for %s rejected: %s", run_id, verdict.error_messages)
            self.audit.record_validation_failure(
                run_id,
                "OutputValidator",
                [str(e) for e in verdict.errors],
                severity=AuditSeverity.ERROR,
            )
        else:
            self.audit.record_decision(
                run_id,
                "ValidationPassed",
                f"attempt {attempt + 1} with {len(verdict.errors)} non-blocking error(s) "
                f"and {len(verdict.warnings)} warning(s)",
                findings=tuple(str(e) for e in verdict.errors) + tuple(str(w) for w in verdict.warnings),
            )
