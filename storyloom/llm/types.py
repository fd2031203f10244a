"""Wire-neutral request and response values shared by every backend."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One chat turn sent to a backend."""

    role: MessageRole
    content: str = ""

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(MessageRole.ASSISTANT, content)


def split_system(messages: Sequence[Message]) -> tuple[str | None, list[Message]]:
    """Separate system turns from the conversation.

    Multiple system turns are joined with a blank line, in order.
    """
    system_parts = [m.content for m in messages if m.role == MessageRole.SYSTEM]
    turns = [m for m in messages if m.role != MessageRole.SYSTEM]
    return ("\n\n".join(system_parts) if system_parts else None), turns


@dataclass(frozen=True)
class UsageStats:
    """Token accounting reported by the backend."""

    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class LLMResponse:
    """Completion text plus what the backend reported about it.

    Attributes:
        content: Generated text ("" when the backend returned none).
        finish_reason: Backend stop reason, if reported.
        model: Model that actually served the request.
        usage: Token accounting, if reported.
        raw_response: The SDK response object, kept for debugging.
    """

    content: str
    finish_reason: str | None = None
    model: str = ""
    usage: UsageStats | None = None
    raw_response: Any = None

    @property
    def is_blank(self) -> bool:
        return not self.content.strip()
