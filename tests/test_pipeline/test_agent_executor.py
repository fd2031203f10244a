"""Tests for AgentExecutor."""

import asyncio

import pytest

from storyloom.audit.trail import AuditSeverity
from storyloom.pipeline.executor import NO_SPECIFIC_ERRORS, AgentExecutor
from storyloom.pipeline.generation import GenerationParameters
from storyloom.pipeline.schemas import (
    AgentResponse,
    AgentRole,
    ErrorSeverity,
    ExecutionOrder,
    PromptPriority,
    ValidationError,
    ValidationVerdict,
    ValidationWarning,
)
from storyloom.pipeline.scripted import ScriptedReply
from tests.factories import RecordingHook, create_prompt_set, create_raw_output

REQUIRED = PromptPriority.REQUIRED
OPTIONAL = PromptPriority.OPTIONAL
FALLBACK = PromptPriority.FALLBACK


class TestSequentialExecution:
    """Tests for Sequential order."""

    @pytest.mark.asyncio
    async def test_runs_in_list_order(self, generator, context):
        prompt_set = create_prompt_set((AgentRole.CHARACTER, REQUIRED), (AgentRole.NARRATOR, REQUIRED))

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert generator.called_roles == [AgentRole.CHARACTER, AgentRole.NARRATOR]
        assert raw.all_successful

    @pytest.mark.asyncio
    async def test_required_failure_stops_the_set(self, generator, context):
        generator.script(AgentRole.SUMMARY, ScriptedReply.fail("backend down"))
        prompt_set = create_prompt_set((AgentRole.SUMMARY, REQUIRED), (AgentRole.NARRATOR, REQUIRED))

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert len(raw) == 1
        assert raw.get(AgentRole.SUMMARY).success is False
        assert "backend down" in raw.get(AgentRole.SUMMARY).error
        assert AgentRole.NARRATOR not in raw
        assert generator.called_roles == [AgentRole.SUMMARY]

    @pytest.mark.asyncio
    async def test_optional_failure_continues(self, generator, context):
        generator.script(AgentRole.CHARACTER, ScriptedReply.fail())
        prompt_set = create_prompt_set((AgentRole.CHARACTER, OPTIONAL), (AgentRole.NARRATOR, REQUIRED))

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert len(raw) == 2
        assert raw.succeeded(AgentRole.NARRATOR)


class TestParallelExecution:
    """Tests for Parallel order."""

    @pytest.mark.asyncio
    async def test_one_response_per_prompt(self, generator, context):
        generator.script(AgentRole.CHARACTER, ScriptedReply.fail())
        prompt_set = create_prompt_set(
            (AgentRole.NARRATOR, REQUIRED),
            (AgentRole.CHARACTER, REQUIRED),
            (AgentRole.SUMMARY, OPTIONAL),
            order=ExecutionOrder.PARALLEL,
        )

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert set(raw.roles) == {AgentRole.NARRATOR, AgentRole.CHARACTER, AgentRole.SUMMARY}
        assert [r.role for r in raw.failed_responses] == [AgentRole.CHARACTER]

    @pytest.mark.asyncio
    async def test_invocations_overlap(self, generator, context):
        generator.script(AgentRole.NARRATOR, ScriptedReply("a", delay=0.2))
        generator.script(AgentRole.CHARACTER, ScriptedReply("b", delay=0.2))
        prompt_set = create_prompt_set(
            (AgentRole.NARRATOR, REQUIRED),
            (AgentRole.CHARACTER, REQUIRED),
            order=ExecutionOrder.PARALLEL,
        )

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert raw.total_duration_seconds < 0.35


class TestConditionalExecution:
    """Tests for Conditional order."""

    @pytest.mark.asyncio
    async def test_fallback_runs_after_primary_success(self, generator, context):
        prompt_set = create_prompt_set(
            (AgentRole.NARRATOR, REQUIRED),
            (AgentRole.CONSISTENCY, FALLBACK),
            order=ExecutionOrder.CONDITIONAL,
        )

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert generator.called_roles == [AgentRole.NARRATOR, AgentRole.CONSISTENCY]
        assert raw.succeeded(AgentRole.CONSISTENCY)

    @pytest.mark.asyncio
    async def test_fallback_skipped_without_primary_success(self, generator, context):
        generator.script(AgentRole.NARRATOR, ScriptedReply.fail())
        prompt_set = create_prompt_set(
            (AgentRole.NARRATOR, REQUIRED),
            (AgentRole.CONSISTENCY, FALLBACK),
            order=ExecutionOrder.CONDITIONAL,
        )

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert raw.roles == [AgentRole.NARRATOR]
        assert AgentRole.CONSISTENCY not in generator.called_roles

    @pytest.mark.asyncio
    async def test_fallback_only_set_runs_nothing(self, generator, context):
        prompt_set = create_prompt_set((AgentRole.CONSISTENCY, FALLBACK), order=ExecutionOrder.CONDITIONAL)

        raw = await AgentExecutor(generator).execute(prompt_set, context)

        assert len(raw) == 0
        assert generator.calls == []


class TestFailureHandling:
    """Tests for agent-level failures and cancellation."""

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_response(self, generator, context):
        generator.script(AgentRole.NARRATOR, ScriptedReply.fail(RuntimeError("kaboom")))

        raw = await AgentExecutor(generator).execute(create_prompt_set(), context)

        assert raw.get(AgentRole.NARRATOR).error == "RuntimeError: kaboom"

    @pytest.mark.asyncio
    async def test_cancel_event_fails_in_flight_call(self, generator, context):
        generator.script(AgentRole.NARRATOR, ScriptedReply("late", delay=5))
        cancel = asyncio.Event()

        async def trigger():
            await asyncio.sleep(0.05)
            cancel.set()

        trigger_task = asyncio.create_task(trigger())
        raw = await AgentExecutor(generator).execute(create_prompt_set(), context, cancel)
        await trigger_task

        response = raw.get(AgentRole.NARRATOR)
        assert response.success is False
        assert "cancelled" in response.error.lower()
        assert raw.total_duration_seconds < 1

    @pytest.mark.asyncio
    async def test_pre_set_cancel_event_skips_backend(self, generator, context):
        cancel = asyncio.Event()
        cancel.set()

        raw = await AgentExecutor(generator).execute(create_prompt_set(), context, cancel)

        assert raw.get(AgentRole.NARRATOR).success is False
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self, generator, context):
        generator.script(AgentRole.NARRATOR, ScriptedReply("late", delay=5))
        executor = AgentExecutor(generator)

        task = asyncio.create_task(executor.execute(create_prompt_set(), context))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_missing_arguments_raise(self, generator, context):
        executor = AgentExecutor(generator)

        with pytest.raises(ValueError):
            await executor.execute(None, context)
        with pytest.raises(ValueError):
            await executor.execute(create_prompt_set(), None)

    def test_generator_required(self):
        with pytest.raises(ValueError):
            AgentExecutor(None)


class TestRequests:
    """Tests for what the backend receives."""

    @pytest.mark.asyncio
    async def test_parameters_and_metadata_attached(self, generator, context):
        params = GenerationParameters(temperature=0.1)

        await AgentExecutor(generator, parameters=params).execute(create_prompt_set(), context)

        request = generator.calls[0]
        assert request.parameters is params
        assert request.metadata["pipeline_id"] == context.run_id
        assert request.system_prompt == "You are the narrator."

    @pytest.mark.asyncio
    async def test_response_metadata(self, generator, context):
        raw = await AgentExecutor(generator).execute(create_prompt_set(), context)

        metadata = raw.get(AgentRole.NARRATOR).metadata
        assert metadata["model"] == "scripted"
        assert metadata["completion_tokens"] > 0


class TestReporting:
    """Tests for hook events and audit entries."""

    @pytest.mark.asyncio
    async def test_hook_receives_call_events(self, generator, context):
        hook = RecordingHook()

        await AgentExecutor(generator, hook=hook).execute(create_prompt_set(), context)

        start = hook.of("agent_call_start")[0]
        end = hook.of("agent_call_end")[0]
        assert start.role == "narrator"
        assert start.priority == "required"
        assert end.success is True
        assert end.pipeline_id == context.run_id

    @pytest.mark.asyncio
    async def test_audit_entries(self, generator, context, audit_trail):
        generator.script(AgentRole.CHARACTER, ScriptedReply.fail("nope"))
        prompt_set = create_prompt_set((AgentRole.CHARACTER, OPTIONAL), (AgentRole.NARRATOR, REQUIRED))

        await AgentExecutor(generator, audit=audit_trail).execute(prompt_set, context)

        entries = audit_trail.entries(context.run_id)
        assert [(e.actor, e.action) for e in entries] == [
            ("character", "GenerateFailed"),
            ("narrator", "GenerateCompleted"),
        ]
        assert entries[0].severity == AuditSeverity.WARNING


class TestRewrite:
    """Tests for rewrite passes."""

    @pytest.mark.asyncio
    async def test_only_successful_roles_are_rewritten(self, generator, context):
        previous = create_raw_output(
            AgentResponse.succeeded(AgentRole.NARRATOR, "Bob walked in."),
            AgentResponse.failed(AgentRole.SUMMARY, "timeout"),
        )
        verdict = ValidationVerdict(
            errors=(ValidationError("Inactive entity acting: Bob", ErrorSeverity.CRITICAL, AgentRole.NARRATOR),)
        )
        generator.script(AgentRole.NARRATOR, "Alice remembered Bob.")

        raw = await AgentExecutor(generator).rewrite(previous, verdict, context)

        assert generator.called_roles == [AgentRole.NARRATOR]
        assert raw.content_for(AgentRole.NARRATOR) == "Alice remembered Bob."
        assert raw.get(AgentRole.NARRATOR).metadata["rewrite_attempt"] == 1
        assert raw.get(AgentRole.SUMMARY) is previous.get(AgentRole.SUMMARY)

    @pytest.mark.asyncio
    async def test_rewrite_prompt_contents(self, generator, context):
        previous = create_raw_output(AgentResponse.succeeded(AgentRole.NARRATOR, "Bob walked in."))
        verdict = ValidationVerdict(
            errors=(ValidationError("Inactive entity acting: Bob", ErrorSeverity.CRITICAL, AgentRole.NARRATOR),),
            warnings=(ValidationWarning("Location 'The Docks' is not mentioned"),),
        )

        await AgentExecutor(generator).rewrite(previous, verdict, context, attempt=2)

        request = generator.calls[0]
        assert "correcting a previous generation" in request.system_prompt
        assert "## Previous Output (with errors):\nBob walked in." in request.user_prompt
        assert "- [CRITICAL] (narrator) Inactive entity acting: Bob" in request.user_prompt
        assert "- [WARNING] Location 'The Docks' is not mentioned" in request.user_prompt
        assert request.metadata["attempt"] == 2

    @pytest.mark.asyncio
    async def test_rewrite_without_findings(self, generator, context):
        previous = create_raw_output()

        await AgentExecutor(generator).rewrite(previous, ValidationVerdict(), context)

        assert NO_SPECIFIC_ERRORS in generator.calls[0].user_prompt

    @pytest.mark.asyncio
    async def test_failed_rewrite_replaces_response(self, generator, context, audit_trail):
        previous = create_raw_output()
        generator.script(AgentRole.NARRATOR, ScriptedReply.fail("still down"))

        raw = await AgentExecutor(generator, audit=audit_trail).rewrite(previous, ValidationVerdict(), context)

        assert raw.get(AgentRole.NARRATOR).success is False
        assert audit_trail.by_action("RewriteFailed")

    @pytest.mark.asyncio
    async def test_rewrite_of_all_failed_output_invokes_nothing(self, generator, context):
        previous = create_raw_output(AgentResponse.failed(AgentRole.NARRATOR, "down"))

        raw = await AgentExecutor(generator).rewrite(previous, ValidationVerdict(), context)

        assert generator.calls == []
        assert raw.get(AgentRole.NARRATOR) is previous.get(AgentRole.NARRATOR)

    @pytest.mark.asyncio
    async def test_rewrite_duration_includes_previous_passes(self, generator, context):
        previous = create_raw_output(duration=2.0)

        raw = await AgentExecutor(generator).rewrite(previous, ValidationVerdict(), context)

        assert 2.0 <= raw.total_duration_seconds < 3.0
