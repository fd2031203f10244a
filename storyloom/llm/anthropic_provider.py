"""Anthropic Messages API backend."""

from typing import Any, Sequence

import anthropic

from storyloom.llm.base import estimate_tokens
from storyloom.llm.sdk_errors import translate_sdk_error
from storyloom.llm.types import LLMResponse, Message, UsageStats, split_system


class AnthropicProvider:
    """Claude models through ``anthropic.AsyncAnthropic``."""

    def __init__(
        self,
        api_key: str | None = None,
        default_model: str = "claude-sonnet-4-20250514",
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: API key; the SDK falls back to ANTHROPIC_API_KEY when empty.
            default_model: Model used when a call names none.
            client: Pre-built client, mainly for tests. Created lazily otherwise.
        """
        self._api_key = api_key or None
        self._default_model = default_model
        self._client = client

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return self._default_model

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    def _build_request(
        self,
        messages: Sequence[Message],
        model: str | None,
        max_tokens: int,
        temperature: float,
        stop_sequences: Sequence[str] | None,
        system_prompt: str | None,
        top_p: float | None,
    ) -> dict[str, Any]:
        # The Messages API takes system text as a top-level field
        inline_system, turns = split_system(messages)
        system = "\n\n".join(s for s in (system_prompt, inline_system) if s)

        request: dict[str, Any] = {
            "model": model or self._default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": m.role.value, "content": m.content} for m in turns],
        }
        if system:
            request["system"] = system
        if stop_sequences:
            request["stop_sequences"] = list(stop_sequences)
        if top_p is not None:
            request["top_p"] = top_p
        return request

    def _parse_response(self, response: Any) -> LLMResponse:
        text = "".join(block.text for block in response.content if block.type == "text")
        usage = None
        if response.usage:
            usage = UsageStats(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            )
        return LLMResponse(
            content=text,
            finish_reason=response.stop_reason,
            model=response.model,
            usage=usage,
            raw_response=response,
        )

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
        request = self._build_request(
            messages, model, max_tokens, temperature, stop_sequences, system_prompt, top_p
        )
        try:
            response = await self._get_client().messages.create(**request)
        except anthropic.APIError as e:
            raise translate_sdk_error(e, anthropic, self.provider_name) from e
        return self._parse_response(response)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return estimate_tokens(text)
