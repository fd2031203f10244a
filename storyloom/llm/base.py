"""Backend protocol every text-generation provider implements."""

from typing import Protocol, Sequence, runtime_checkable

from storyloom.llm.types import LLMResponse, Message

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count for backends without a public tokenizer."""
    return len(text) // CHARS_PER_TOKEN


@runtime_checkable
class LLMProvider(Protocol):
    """A chat-completion backend.

    Implementations translate their SDK's exceptions into the
    ``storyloom.llm.exceptions`` hierarchy and let everything else propagate.
    """

    @property
    def provider_name(self) -> str:
        ...

    @property
    def default_model(self) -> str:
        ...

    async def complete(
        self,
        messages: Sequence[Message],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        stop_sequences: Sequence[str] | None = None,
        system_prompt: str | None = None,
        top_p: float | None = None,
    ) -> LLMResponse:
        """Generate one completion.

        Args:
            messages: Conversation turns; system turns are merged with
                ``system_prompt``.
            model: Overrides the provider's default model.
            max_tokens: Completion length cap.
            temperature: Sampling temperature.
            stop_sequences: Sequences that end generation.
            system_prompt: System-level instructions.
            top_p: Nucleus sampling cutoff; omitted from the request when None.
        """
        ...

    def count_tokens(self, text: str, model: str | None = None) -> int:
        ...
