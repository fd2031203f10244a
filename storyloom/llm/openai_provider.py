"""OpenAI chat-completions backend.

Also serves OpenAI-compatible endpoints (vLLM, DeepSeek, local servers)
through ``base_url``.
"""

from typing import Any, Sequence

import openai

from storyloom.llm.base import estimate_tokens
from storyloom.llm.sdk_errors import translate_sdk_error
from storyloom.llm.types import LLMResponse, Message, UsageStats, split_system


class OpenAIProvider:
    """Chat models through ``openai.AsyncOpenAI``."""

    def __init__(
        self,
        api_key: str | None = None,
        default_model: str = "gpt-4o",
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: API key; the SDK falls back to OPENAI_API_KEY when empty.
            default_model: Model used when a call names none.
            base_url: Endpoint of an OpenAI-compatible server.
            client: Pre-built client, mainly for tests. Created lazily otherwise.
        """
        self._api_key = api_key or None
        self._default_model = default_model
        self._base_url = base_url
        self._client = client

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return self._default_model

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
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
        inline_system, turns = split_system(messages)
        system = "\n\n".join(s for s in (system_prompt, inline_system) if s)

        api_messages = [{"role": "system", "content": system}] if system else []
        api_messages.extend({"role": m.role.value, "content": m.content} for m in turns)

        request: dict[str, Any] = {
            "model": model or self._default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": api_messages,
        }
        if stop_sequences:
            request["stop"] = list(stop_sequences)
        if top_p is not None:
            request["top_p"] = top_p
        return request

    def _parse_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = UsageStats(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason,
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
            response = await self._get_client().chat.completions.create(**request)
        except openai.APIError as e:
            raise translate_sdk_error(e, openai, self.provider_name) from e
        return self._parse_response(response)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return estimate_tokens(text)
