"""Prompt templates for pipeline agents."""

from storyloom.pipeline.intent import IntentType
from storyloom.pipeline.schemas import AgentRole

MAX_FACTS_PER_PARTICIPANT = 5

NARRATOR_SYSTEM_PROMPT = """You are a narrative engine for the world "{world_name}".
Generate coherent, engaging narrative content that advances the story.
Maintain consistency with established facts and character behaviors.
Write in third person, past tense.
Focus on showing rather than telling."""

CHARACTER_SYSTEM_PROMPT = """You are a character dialogue generator for "{world_name}".
Generate authentic, in-character dialogue and reactions.
Each character has distinct personality traits and speech patterns.
Dialogue should reveal character and advance plot.
Use appropriate emotional tone based on context."""

SUMMARY_SYSTEM_PROMPT = """You are a narrative summarizer for "{world_name}".
Generate concise, factual summaries of story events.
Focus on key plot points, character actions, and state changes.
Maintain chronological accuracy.
Avoid interpretation or embellishment."""

CONSISTENCY_SYSTEM_PROMPT = """You are a consistency checker for "{world_name}".
Verify that narrative content aligns with established facts.
Identify contradictions with character states, locations, or events.
Flag any logical inconsistencies.
Report issues clearly and specifically."""

SYSTEM_PROMPTS: dict[AgentRole, str] = {
    AgentRole.NARRATOR: NARRATOR_SYSTEM_PROMPT,
    AgentRole.CHARACTER: CHARACTER_SYSTEM_PROMPT,
    AgentRole.SUMMARY: SUMMARY_SYSTEM_PROMPT,
    AgentRole.CONSISTENCY: CONSISTENCY_SYSTEM_PROMPT,
}

INTENT_DESCRIPTIONS: dict[IntentType, str] = {
    IntentType.CONTINUE: "Continue the narrative naturally",
    IntentType.INTRODUCE_EVENT: "Introduce a new event",
    IntentType.GENERATE_DIALOGUE: "Generate dialogue between characters",
    IntentType.DESCRIBE_LOCATION: "Describe the current scene in detail",
    IntentType.SUMMARIZE: "Summarize recent events",
    IntentType.CREATE_TENSION: "Create dramatic tension",
    IntentType.RESOLVE_CONFLICT: "Resolve the current conflict",
}

GENERIC_INTENT_DESCRIPTION = "Generate narrative content"

NARRATOR_INSTRUCTIONS: dict[IntentType, str] = {
    IntentType.CONTINUE: "Continue the story from where it left off. Maintain pacing and tone.",
    IntentType.INTRODUCE_EVENT: "Introduce the event so it follows from what came before.",
    IntentType.GENERATE_DIALOGUE: "Frame the dialogue with action and setting.",
    IntentType.DESCRIBE_LOCATION: "Describe the scene with sensory details. Set the atmosphere.",
    IntentType.CREATE_TENSION: "Build suspense and dramatic tension. Use pacing techniques.",
    IntentType.RESOLVE_CONFLICT: "Bring the conflict to a satisfying resolution.",
}

CHARACTER_INSTRUCTIONS: dict[IntentType, str] = {
    IntentType.GENERATE_DIALOGUE: "Generate a natural conversation. Each character should have a distinct voice.",
    IntentType.RESOLVE_CONFLICT: "Generate character reactions and dialogue for the resolution.",
}

DEFAULT_INSTRUCTIONS: dict[AgentRole, str] = {
    AgentRole.NARRATOR: "Generate appropriate narrative content.",
    AgentRole.CHARACTER: "Generate in-character dialogue and reactions.",
    AgentRole.SUMMARY: "Provide a concise summary of the key events and state changes.",
    AgentRole.CONSISTENCY: "Check the established facts for contradictions and list any you find.",
}

REWRITE_SYSTEM_PROMPT = """You are correcting a previous generation that had errors.
Fix the issues while maintaining the narrative quality."""

REWRITE_USER_PROMPT = """## Previous Output (with errors):
{previous_content}

## Errors to Fix:
{errors}

## Instructions:
Rewrite the content to fix the identified errors.
Maintain the same narrative intent and style.
Ensure consistency with the story context."""


def system_prompt_for(role: AgentRole, world_name: str) -> str:
    return SYSTEM_PROMPTS[role].format(world_name=world_name)


def instructions_for(role: AgentRole, intent_type: IntentType | None) -> str:
    """Role-specific closing instructions for an intent."""
    if role == AgentRole.NARRATOR and intent_type in NARRATOR_INSTRUCTIONS:
        return NARRATOR_INSTRUCTIONS[intent_type]
    if role == AgentRole.CHARACTER and intent_type in CHARACTER_INSTRUCTIONS:
        return CHARACTER_INSTRUCTIONS[intent_type]
    return DEFAULT_INSTRUCTIONS[role]


def describe_intent(intent_type: IntentType | None) -> str:
    if intent_type is None:
        return GENERIC_INTENT_DESCRIPTION
    return INTENT_DESCRIPTIONS[intent_type]
