"""Narrative generation pipeline.

Quick Start:
    from storyloom.pipeline import (
        NarrativePipeline, NarrativeIntent, NarrativeState, ScriptedGenerator,
    )

    pipeline = NarrativePipeline(ScriptedGenerator())
    result = await pipeline.submit(state, NarrativeIntent.continue_story())
"""

# Value types
from storyloom.pipeline.schemas import (
    AgentPrompt,
    AgentResponse,
    AgentRole,
    ErrorSeverity,
    EventDigest,
    ExecutionOrder,
    GeneratedEvent,
    LocationSummary,
    NarrativeContext,
    NarrativeDelta,
    ParticipantStatus,
    ParticipantSummary,
    PromptPriority,
    PromptSet,
    RawOutput,
    StateChange,
    StateChangeKind,
    ValidationError,
    ValidationVerdict,
    ValidationWarning,
)
from storyloom.pipeline.intent import IntentType, NarrativeIntent

# State
from storyloom.pipeline.state import (
    EventRecord,
    LocationRecord,
    NarrativeState,
    NarrativeStateProvider,
    ParticipantRecord,
)

# Generation capability
from storyloom.pipeline.generation import (
    GenerationCapability,
    GenerationParameters,
    GenerationRequest,
    GenerationResult,
    ProviderGenerator,
    RoleRoutedGenerator,
    create_role_generator,
)
from storyloom.pipeline.scripted import ScriptedGenerator, ScriptedReply

# Stages
from storyloom.pipeline.context_assembler import ContextAssembler
from storyloom.pipeline.prompt_compiler import PromptCompiler
from storyloom.pipeline.executor import AgentExecutor
from storyloom.pipeline.validator import OutputValidator, ValidatorConfig
from storyloom.pipeline.pacing import FixedPacing, LatencyPacing, PacingPolicy
from storyloom.pipeline.integrator import FALLBACK_TEXT, StateIntegrator

# Entry point
from storyloom.pipeline.orchestrator import NarrativePipeline, PipelineFailure, RewritePolicy

__all__ = [
    # Value types
    "AgentPrompt",
    "AgentResponse",
    "AgentRole",
    "ErrorSeverity",
    "EventDigest",
    "ExecutionOrder",
    "GeneratedEvent",
    "LocationSummary",
    "NarrativeContext",
    "NarrativeDelta",
    "ParticipantStatus",
    "ParticipantSummary",
    "PromptPriority",
    "PromptSet",
    "RawOutput",
    "StateChange",
    "StateChangeKind",
    "ValidationError",
    "ValidationVerdict",
    "ValidationWarning",
    "IntentType",
    "NarrativeIntent",
    # State
    "EventRecord",
    "LocationRecord",
    "NarrativeState",
    "NarrativeStateProvider",
    "ParticipantRecord",
    # Generation
    "GenerationCapability",
    "GenerationParameters",
    "GenerationRequest",
    "GenerationResult",
    "ProviderGenerator",
    "RoleRoutedGenerator",
    "create_role_generator",
    "ScriptedGenerator",
    "ScriptedReply",
    # Stages
    "ContextAssembler",
    "PromptCompiler",
    "AgentExecutor",
    "OutputValidator",
    "ValidatorConfig",
    "FixedPacing",
    "LatencyPacing",
    "PacingPolicy",
    "FALLBACK_TEXT",
    "StateIntegrator",
    # Entry point
    "NarrativePipeline",
    "PipelineFailure",
    "RewritePolicy",
]
