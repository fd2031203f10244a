"""Deterministic generation backend for tests and offline runs."""

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass

from storyloom.llm.exceptions import LLMError
from storyloom.pipeline.generation import GenerationRequest, GenerationResult
from storyloom.pipeline.schemas import AgentRole

DEFAULT_SCRIPTED_TEXT = "The story continued quietly as the hours passed."


@dataclass(frozen=True)
class ScriptedReply:
    """One scripted outcome: text, or an error to raise, after a delay."""

    text: str = ""
    error: BaseException | None = None
    delay: float = 0.0

    @classmethod
    def fail(cls, error: BaseException | str = "scripted failure", delay: float = 0.0) -> "ScriptedReply":
        if isinstance(error, str):
            error = LLMError(error)
        return cls(error=error, delay=delay)


class ScriptedGenerator:
    """Returns queued replies per role, then a default reply.

    Unlike real backends, an empty scripted text is returned as a success.

    Example:
        generator = ScriptedGenerator()
        generator.script(AgentRole.NARRATOR, "Rain fell on the harbor.")
        generator.script(AgentRole.SUMMARY, ScriptedReply.fail("backend down"))
    """

    def __init__(self, default: ScriptedReply | str | None = None) -> None:
        if default is None:
            default = ScriptedReply(DEFAULT_SCRIPTED_TEXT)
        self.default = self._as_reply(default)
        self._queues: dict[AgentRole, deque[ScriptedReply]] = defaultdict(deque)
        self.calls: list[GenerationRequest] = []

    @staticmethod
    def _as_reply(reply: ScriptedReply | str) -> ScriptedReply:
        return ScriptedReply(reply) if isinstance(reply, str) else reply

    def script(self, role: AgentRole, *replies: ScriptedReply | str) -> "ScriptedGenerator":
        """Queue replies for a role, consumed in order."""
        self._queues[role].extend(self._as_reply(r) for r in replies)
        return self

    def calls_for(self, role: AgentRole) -> list[GenerationRequest]:
        return [c for c in self.calls if c.role == role]

    @property
    def called_roles(self) -> list[AgentRole]:
        return [c.role for c in self.calls]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.calls.append(request)
        queue = self._queues.get(request.role)
        reply = queue.popleft() if queue else self.default

        if reply.delay:
            await asyncio.sleep(reply.delay)
        if reply.error is not None:
            raise reply.error

        return GenerationResult(
            content=reply.text,
            prompt_tokens=len(request.user_prompt.split()),
            completion_tokens=len(reply.text.split()),
            duration_seconds=reply.delay,
            model="scripted",
        )
