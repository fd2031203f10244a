"""Prompt compilation: (context, intent) -> PromptSet."""

import logging

from storyloom.pipeline.intent import IntentType, NarrativeIntent
from storyloom.pipeline.prompts import (
    MAX_FACTS_PER_PARTICIPANT,
    describe_intent,
    instructions_for,
    system_prompt_for,
)
from storyloom.pipeline.schemas import (
    AgentPrompt,
    AgentRole,
    ExecutionOrder,
    NarrativeContext,
    PromptPriority,
    PromptSet,
)

logger = logging.getLogger(__name__)

# (role, priority) plan and execution order per intent kind
_INTENT_PLANS: dict[IntentType, tuple[list[tuple[AgentRole, PromptPriority]], ExecutionOrder]] = {
    IntentType.CONTINUE: (
        [(AgentRole.NARRATOR, PromptPriority.REQUIRED)],
        ExecutionOrder.SEQUENTIAL,
    ),
    IntentType.INTRODUCE_EVENT: (
        [(AgentRole.NARRATOR, PromptPriority.REQUIRED)],
        ExecutionOrder.SEQUENTIAL,
    ),
    IntentType.DESCRIBE_LOCATION: (
        [(AgentRole.NARRATOR, PromptPriority.REQUIRED)],
        ExecutionOrder.SEQUENTIAL,
    ),
    IntentType.CREATE_TENSION: (
        [(AgentRole.NARRATOR, PromptPriority.REQUIRED)],
        ExecutionOrder.SEQUENTIAL,
    ),
    IntentType.GENERATE_DIALOGUE: (
        [
            (AgentRole.CHARACTER, PromptPriority.REQUIRED),
            (AgentRole.NARRATOR, PromptPriority.REQUIRED),
        ],
        ExecutionOrder.SEQUENTIAL,
    ),
    IntentType.RESOLVE_CONFLICT: (
        [
            (AgentRole.NARRATOR, PromptPriority.REQUIRED),
            (AgentRole.CHARACTER, PromptPriority.OPTIONAL),
        ],
        ExecutionOrder.PARALLEL,
    ),
    IntentType.SUMMARIZE: (
        [(AgentRole.SUMMARY, PromptPriority.REQUIRED)],
        ExecutionOrder.SEQUENTIAL,
    ),
}


class PromptCompiler:
    """Turns a context and an intent into a set of agent prompts.

    Args:
        consistency_check: Append a Fallback consistency prompt and run the
            set under Conditional order.
    """

    def __init__(self, consistency_check: bool = False) -> None:
        self.consistency_check = consistency_check

    def compile(self, context: NarrativeContext, intent: NarrativeIntent) -> PromptSet:
        """Compile the prompt set for one run.

        Unrecognized intent kinds compile as a plain continuation.

        Raises:
            ValueError: If context or intent is missing.
        """
        if context is None:
            raise ValueError("context is required")
        if intent is None:
            raise ValueError("intent is required")

        intent_type = intent.intent_type
        if intent_type is None:
            logger.warning("Unknown intent kind %r, compiling as continuation", intent.kind_name)
        plan, order = _INTENT_PLANS[intent_type or IntentType.CONTINUE]

        prompts = [
            self._build_prompt(role, priority, context, intent)
            for role, priority in plan
        ]
        if self.consistency_check:
            prompts.append(
                self._build_prompt(AgentRole.CONSISTENCY, PromptPriority.FALLBACK, context, intent)
            )
            order = ExecutionOrder.CONDITIONAL

        prompt_set = PromptSet(tuple(prompts), order)
        logger.debug(
            "Compiled %d prompts (%s) for intent %s",
            len(prompt_set),
            order.value,
            intent.kind_name,
        )
        return prompt_set

    def _build_prompt(
        self,
        role: AgentRole,
        priority: PromptPriority,
        context: NarrativeContext,
        intent: NarrativeIntent,
    ) -> AgentPrompt:
        return AgentPrompt(
            role=role,
            system_prompt=system_prompt_for(role, context.world_name),
            user_prompt=self._build_user_prompt(role, context, intent),
            variables=self._build_variables(role, context, intent),
            priority=priority,
        )

    def _build_user_prompt(
        self,
        role: AgentRole,
        context: NarrativeContext,
        intent: NarrativeIntent,
    ) -> str:
        lines = [f"## Intent: {describe_intent(intent.intent_type)}"]
        if intent.description:
            lines.append(f"Details: {intent.description}")
        lines.append("")

        if context.participants:
            lines.append("## Active Characters:")
            for participant in context.participants:
                lines.append(f"- {participant.name} ({participant.status.value})")
                if participant.known_facts:
                    facts = sorted(participant.known_facts)[:MAX_FACTS_PER_PARTICIPANT]
                    lines.append(f"  Known facts: {', '.join(facts)}")
            lines.append("")

        if context.location is not None:
            lines.append(f"## Location: {context.location.name}")
            if context.location.description:
                lines.append(context.location.description)
            lines.append("")

        if context.recent_events:
            lines.append("## Recent Events:")
            lines.extend(f"- {event.description}" for event in context.recent_events)
            lines.append("")

        if context.summary:
            lines.append("## Recent Events Summary:")
            lines.append(context.summary)
            lines.append("")

        lines.append(instructions_for(role, intent.intent_type))
        return "\n".join(lines)

    def _build_variables(
        self,
        role: AgentRole,
        context: NarrativeContext,
        intent: NarrativeIntent,
    ) -> dict[str, str]:
        variables = {
            "world_name": context.world_name,
            "intent_type": intent.kind_name,
            "agent_role": role.value,
            "participant_count": str(len(context.participants)),
        }
        if context.participants:
            variables["participant_names"] = ", ".join(context.participant_names)
        if context.location is not None:
            variables["location_name"] = context.location.name
        return variables
