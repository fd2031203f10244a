"""Agent execution: runs a PromptSet against a generation capability.

Agent-level failures never escape this module. Timeouts, transport errors,
empty responses and cancellation of a single invocation all become a failed
AgentResponse, so a partially completed set still yields a usable RawOutput.
Only missing arguments raise, and a cancellation of the caller's own task
is re-raised untouched.
"""

import asyncio
import logging
import time

from storyloom.audit.trail import AuditSeverity, AuditTrail
from storyloom.llm.exceptions import InvocationCancelledError
from storyloom.observability.events import AgentCallEndEvent, AgentCallStartEvent
from storyloom.observability.hooks import NullHook, ObservabilityHook
from storyloom.pipeline.generation import (
    GenerationCapability,
    GenerationParameters,
    GenerationRequest,
    GenerationResult,
)
from storyloom.pipeline.prompts import REWRITE_SYSTEM_PROMPT, REWRITE_USER_PROMPT
from storyloom.pipeline.schemas import (
    AgentPrompt,
    AgentResponse,
    ExecutionOrder,
    NarrativeContext,
    PromptPriority,
    PromptSet,
    RawOutput,
    ValidationVerdict,
)

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 80
NO_SPECIFIC_ERRORS = "- No specific errors were attributed to this output; improve overall quality."


class AgentExecutor:
    """Executes prompt sets and rewrite passes.

    Example:
        executor = AgentExecutor(ScriptedGenerator())
        raw = await executor.execute(prompt_set, context)
        if not verdict.is_valid:
            raw = await executor.rewrite(raw, verdict, context)
    """

    def __init__(
        self,
        generator: GenerationCapability,
        parameters: GenerationParameters | None = None,
        hook: ObservabilityHook | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            generator: Backend every prompt is sent to.
            parameters: Sampling parameters attached to each request
                (None lets the backend use its own defaults).
            hook: Receives agent call events.
            audit: Receives one entry per invocation.
        """
        if generator is None:
            raise ValueError("generator is required")
        self.generator = generator
        self.parameters = parameters
        self.hook = hook or NullHook()
        self.audit = audit

    async def execute(
        self,
        prompt_set: PromptSet,
        context: NarrativeContext,
        cancel_event: asyncio.Event | None = None,
    ) -> RawOutput:
        """Run a prompt set under its declared execution order.

        Args:
            prompt_set: Prompts to run.
            context: Snapshot of the run; read-only.
            cancel_event: When set, in-flight and pending invocations
                resolve as failed responses.

        Returns:
            One response per attempted prompt, keyed by role.

        Raises:
            ValueError: If prompt_set or context is missing.
        """
        if prompt_set is None:
            raise ValueError("prompt_set is required")
        if context is None:
            raise ValueError("context is required")

        start_time = time.perf_counter()
        if prompt_set.order == ExecutionOrder.SEQUENTIAL:
            responses = await self._run_sequential(list(prompt_set), context, cancel_event)
        elif prompt_set.order == ExecutionOrder.PARALLEL:
            responses = await self._run_parallel(list(prompt_set), context, cancel_event)
        elif prompt_set.order == ExecutionOrder.CONDITIONAL:
            responses = await self._run_conditional(prompt_set, context, cancel_event)
        else:
            raise ValueError(f"Unsupported execution order: {prompt_set.order}")

        raw = RawOutput.from_responses(responses, time.perf_counter() - start_time)
        logger.debug(
            "Executed %d/%d prompts (%s) in %.3fs, %d failed",
            len(raw),
            len(prompt_set),
            prompt_set.order.value,
            raw.total_duration_seconds,
            len(raw.failed_responses),
        )
        return raw

    async def rewrite(
        self,
        previous: RawOutput,
        verdict: ValidationVerdict,
        context: NarrativeContext,
        cancel_event: asyncio.Event | None = None,
        attempt: int = 1,
    ) -> RawOutput:
        """Ask every previously successful role to revise its text.

        Failed responses are carried over unchanged and never re-invoked.
        Rewrites for different roles run concurrently.

        Args:
            previous: Output being revised.
            verdict: Findings to address.
            context: Snapshot of the run.
            cancel_event: Cancellation signal, as for ``execute``.
            attempt: Rewrite attempt number, recorded on each response.

        Returns:
            A new RawOutput covering the same roles as ``previous``. Its
            duration includes the duration of ``previous``.

        Raises:
            ValueError: If any argument is missing.
        """
        if previous is None:
            raise ValueError("previous output is required")
        if verdict is None:
            raise ValueError("verdict is required")
        if context is None:
            raise ValueError("context is required")

        start_time = time.perf_counter()
        prompts = [
            self._build_rewrite_prompt(response, verdict)
            for response in previous.successful_responses
        ]
        revised = await asyncio.gather(
            *(self._invoke(p, context, cancel_event, attempt) for p in prompts)
        )
        revised_by_role = {r.role: r.with_metadata("rewrite_attempt", attempt) for r in revised}

        responses = [
            revised_by_role.get(role, response)
            for role, response in previous.responses.items()
        ]
        elapsed = time.perf_counter() - start_time
        raw = RawOutput.from_responses(responses, previous.total_duration_seconds + elapsed)
        logger.debug(
            "Rewrite attempt %d revised %d role(s) in %.3fs",
            attempt,
            len(prompts),
            elapsed,
        )
        return raw

    async def _run_sequential(
        self,
        prompts: list[AgentPrompt],
        context: NarrativeContext,
        cancel_event: asyncio.Event | None,
    ) -> list[AgentResponse]:
        responses = []
        for prompt in prompts:
            response = await self._invoke(prompt, context, cancel_event)
            responses.append(response)
            if not response.success and prompt.priority == PromptPriority.REQUIRED:
                logger.warning(
                    "Required %s prompt failed, skipping %d remaining prompt(s)",
                    prompt.role.value,
                    len(prompts) - len(responses),
                )
                break
        return responses

    async def _run_parallel(
        self,
        prompts: list[AgentPrompt],
        context: NarrativeContext,
        cancel_event: asyncio.Event | None,
    ) -> list[AgentResponse]:
        return list(
            await asyncio.gather(*(self._invoke(p, context, cancel_event) for p in prompts))
        )

    async def _run_conditional(
        self,
        prompt_set: PromptSet,
        context: NarrativeContext,
        cancel_event: asyncio.Event | None,
    ) -> list[AgentResponse]:
        primaries = prompt_set.with_priority(PromptPriority.REQUIRED, PromptPriority.OPTIONAL)
        fallbacks = prompt_set.with_priority(PromptPriority.FALLBACK)

        responses = []
        for prompt in primaries:
            responses.append(await self._invoke(prompt, context, cancel_event))

        if not any(r.success for r in responses):
            if fallbacks:
                logger.warning(
                    "No primary prompt succeeded, skipping %d fallback prompt(s)", len(fallbacks)
                )
            return responses

        for prompt in fallbacks:
            responses.append(await self._invoke(prompt, context, cancel_event))
        return responses

    def _build_rewrite_prompt(
        self,
        response: AgentResponse,
        verdict: ValidationVerdict,
    ) -> AgentPrompt:
        findings = verdict.messages_for(response.role)
        errors = "\n".join(f"- {line}" for line in findings) if findings else NO_SPECIFIC_ERRORS
        return AgentPrompt(
            role=response.role,
            system_prompt=REWRITE_SYSTEM_PROMPT,
            user_prompt=REWRITE_USER_PROMPT.format(
                previous_content=response.content,
                errors=errors,
            ),
            priority=PromptPriority.REQUIRED,
        )

    async def _invoke(
        self,
        prompt: AgentPrompt,
        context: NarrativeContext,
        cancel_event: asyncio.Event | None,
        attempt: int = 0,
    ) -> AgentResponse:
        """Run one prompt and turn every agent-level outcome into a response."""
        role = prompt.role
        request = GenerationRequest(
            role=role,
            system_prompt=prompt.system_prompt,
            user_prompt=prompt.user_prompt,
            parameters=self.parameters,
            metadata={"pipeline_id": context.run_id, "attempt": attempt, **prompt.variables},
        )
        self.hook.on_agent_call_start(
            AgentCallStartEvent(
                role=role.value,
                priority=prompt.priority.value,
                attempt=attempt,
                pipeline_id=context.run_id,
            )
        )

        start_time = time.perf_counter()
        result: GenerationResult | None = None
        error = "Backend returned no result"
        try:
            result = await self._generate(request, cancel_event)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            error = "Invocation cancelled"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
        duration = time.perf_counter() - start_time

        if result is not None:
            response = AgentResponse.succeeded(
                role,
                result.content,
                duration_seconds=duration,
                metadata={
                    "model": result.model,
                    "prompt_tokens": result.prompt_tokens,
                    "completion_tokens": result.completion_tokens,
                },
            )
        else:
            logger.warning("Agent %s failed: %s", role.value, error)
            response = AgentResponse.failed(role, error, duration_seconds=duration)

        self._report(response, prompt, context, attempt)
        return response

    async def _generate(
        self,
        request: GenerationRequest,
        cancel_event: asyncio.Event | None,
    ) -> GenerationResult:
        if cancel_event is None:
            return await self.generator.generate(request)
        if cancel_event.is_set():
            raise InvocationCancelledError()

        generation = asyncio.ensure_future(self.generator.generate(request))
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {generation, cancelled},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (generation, cancelled):
                if not task.done():
                    task.cancel()

        if generation in done:
            return generation.result()
        raise InvocationCancelledError()

    def _report(
        self,
        response: AgentResponse,
        prompt: AgentPrompt,
        context: NarrativeContext,
        attempt: int,
    ) -> None:
        self.hook.on_agent_call_end(
            AgentCallEndEvent(
                role=response.role.value,
                duration_ms=response.duration_seconds * 1000,
                success=response.success,
                attempt=attempt,
                error=response.error,
                completion_tokens=response.metadata.get("completion_tokens", 0),
                text_preview=response.content[:PREVIEW_LENGTH],
                pipeline_id=context.run_id,
            )
        )
        if self.audit is None:
            return

        label = "Rewrite" if attempt else "Generate"
        if response.success:
            self.audit.record_agent_action(
                context.run_id,
                response.role.value,
                f"{label}Completed",
                f"{prompt.priority.value} prompt produced {len(response.content)} chars "
                f"in {response.duration_seconds:.3f}s",
            )
        else:
            self.audit.record_agent_action(
                context.run_id,
                response.role.value,
                f"{label}Failed",
                f"{prompt.priority.value} prompt failed: {response.error}",
                severity=AuditSeverity.WARNING,
            )
