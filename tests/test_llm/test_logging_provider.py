"""Tests for the logging provider wrapper."""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock

from storyloom.llm.exceptions import ProviderError
from storyloom.llm.logging_provider import LoggingProvider
from storyloom.llm.types import LLMResponse, Message


@pytest.fixture
def inner_provider():
    provider = MagicMock()
    provider.provider_name = "anthropic"
    provider.default_model = "claude-sonnet-4-20250514"
    provider.complete = AsyncMock(
        return_value=LLMResponse(content="Once upon a time.", finish_reason="end_turn")
    )
    provider.count_tokens = MagicMock(return_value=7)
    return provider


class TestLoggingProvider:
    """Tests for LoggingProvider delegation and logging."""

    def test_delegates_identity(self, inner_provider):
        wrapped = LoggingProvider(inner_provider)
        assert wrapped.provider_name == "anthropic"
        assert wrapped.default_model == "claude-sonnet-4-20250514"
        assert wrapped.wrapped is inner_provider

    @pytest.mark.asyncio
    async def test_complete_delegates_and_logs(self, inner_provider, caplog):
        wrapped = LoggingProvider(inner_provider)

        with caplog.at_level(logging.DEBUG, logger="storyloom.llm.logging_provider"):
            response = await wrapped.complete([Message.user("Hi")], system_prompt="Narrate.")

        assert response.content == "Once upon a time."
        assert inner_provider.complete.await_args.kwargs["system_prompt"] == "Narrate."
        assert "LLM request anthropic/claude-sonnet-4-20250514" in caplog.text
        assert "Once upon a time." in caplog.text

    @pytest.mark.asyncio
    async def test_errors_logged_and_reraised(self, inner_provider, caplog):
        inner_provider.complete.side_effect = ProviderError("down", is_retryable=True)
        wrapped = LoggingProvider(inner_provider)

        with caplog.at_level(logging.DEBUG, logger="storyloom.llm.logging_provider"):
            with pytest.raises(ProviderError):
                await wrapped.complete([Message.user("Hi")])

        assert "failed" in caplog.text

    def test_count_tokens_delegates(self, inner_provider):
        assert LoggingProvider(inner_provider).count_tokens("abc") == 7
