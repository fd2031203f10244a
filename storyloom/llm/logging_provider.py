"""Logging wrapper for LLM providers.

Wraps any LLM provider and logs each request and response at DEBUG level.
"""

import logging
import time
from typing import Sequence

from storyloom.llm.base import LLMProvider
from storyloom.llm.types import LLMResponse, Message

logger = logging.getLogger(__name__)


class LoggingProvider:
    """Wrapper that logs every call made through a provider.

    Args:
        provider: The LLM provider to wrap.
        log: Logger to write to (defaults to this module's logger).
    """

    def __init__(
        self,
        provider: LLMProvider,
        log: logging.Logger | None = None,
    ) -> None:
        self._provider = provider
        self._log = log or logger

    @property
    def provider_name(self) -> str:
        """Return provider identifier."""
        return self._provider.provider_name

    @property
    def default_model(self) -> str:
        """Return default model for this provider."""
        return self._provider.default_model

    @property
    def wrapped(self) -> LLMProvider:
        """The underlying provider."""
        return self._provider

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
        """Generate a completion, logging the request and its outcome."""
        model_name = model or self._provider.default_model
        self._log.debug(
            "LLM request %s/%s: system=%r messages=%d max_tokens=%d temperature=%.2f",
            self._provider.provider_name,
            model_name,
            system_prompt,
            len(messages),
            max_tokens,
            temperature,
        )
        start_time = time.perf_counter()
        try:
            response = await self._provider.complete(
                messages=messages,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                stop_sequences=stop_sequences,
                system_prompt=system_prompt,
                top_p=top_p,
            )
        except Exception as e:
            self._log.debug(
                "LLM call to %s failed after %.2fs: %s",
                model_name,
                time.perf_counter() - start_time,
                e,
            )
            raise
        self._log.debug(
            "LLM response from %s in %.2fs (%s): %r",
            model_name,
            time.perf_counter() - start_time,
            response.finish_reason,
            response.content,
        )
        return response

    def count_tokens(self, text: str, model: str | None = None) -> int:
        """Delegate token counting to the wrapped provider."""
        return self._provider.count_tokens(text, model)
