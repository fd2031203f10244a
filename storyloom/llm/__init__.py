"""LLM provider abstraction layer.

Unified interface over Anthropic and OpenAI-compatible chat backends.

Quick Start:
    from storyloom.llm import create_provider, Message
    from storyloom.config import parse_provider_config

    provider = create_provider(parse_provider_config("openai:gpt-4o-mini"))
    response = await provider.complete(
        messages=[Message.user("Describe the harbor at dawn")],
        max_tokens=500,
    )
    print(response.content)
"""

# Request / response values
from storyloom.llm.types import LLMResponse, Message, MessageRole, UsageStats, split_system

# Protocol
from storyloom.llm.base import LLMProvider, estimate_tokens

# Providers
from storyloom.llm.anthropic_provider import AnthropicProvider
from storyloom.llm.openai_provider import OpenAIProvider
from storyloom.llm.logging_provider import LoggingProvider

# Factory
from storyloom.llm.factory import create_provider

# Retry utilities
from storyloom.llm.retry import RetryConfig, backoff_delay, is_transient, with_retry
from storyloom.llm.sdk_errors import translate_sdk_error

# Exceptions
from storyloom.llm.exceptions import (
    LLMError,
    ProviderError,
    RateLimitError,
    AuthenticationError,
    ContentPolicyError,
    ContextLengthError,
    GenerationTimeoutError,
    EmptyResponseError,
    InvocationCancelledError,
    UnsupportedProviderError,
)

__all__ = [
    # Request / response values
    "Message",
    "MessageRole",
    "LLMResponse",
    "UsageStats",
    "split_system",
    # Protocol
    "LLMProvider",
    "estimate_tokens",
    # Providers
    "AnthropicProvider",
    "OpenAIProvider",
    "LoggingProvider",
    # Factory
    "create_provider",
    # Retry
    "RetryConfig",
    "backoff_delay",
    "is_transient",
    "with_retry",
    "translate_sdk_error",
    # Exceptions
    "LLMError",
    "ProviderError",
    "RateLimitError",
    "AuthenticationError",
    "ContentPolicyError",
    "ContextLengthError",
    "GenerationTimeoutError",
    "EmptyResponseError",
    "InvocationCancelledError",
    "UnsupportedProviderError",
]
