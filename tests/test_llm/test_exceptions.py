"""Tests for LLM exception hierarchy."""

from storyloom.llm.exceptions import (
    AuthenticationError,
    ContentPolicyError,
    ContextLengthError,
    EmptyResponseError,
    GenerationTimeoutError,
    InvocationCancelledError,
    LLMError,
    ProviderError,
    RateLimitError,
    UnsupportedProviderError,
)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    def test_provider_errors_are_llm_errors(self):
        for exc_type in (
            RateLimitError,
            AuthenticationError,
            ContentPolicyError,
            GenerationTimeoutError,
            EmptyResponseError,
        ):
            assert issubclass(exc_type, ProviderError)
            assert issubclass(exc_type, LLMError)

    def test_cancellation_is_not_a_provider_error(self):
        assert issubclass(InvocationCancelledError, LLMError)
        assert not issubclass(InvocationCancelledError, ProviderError)

    def test_unsupported_provider_is_llm_error(self):
        assert issubclass(UnsupportedProviderError, LLMError)


class TestExceptionAttributes:
    """Tests for exception attributes."""

    def test_rate_limit_is_retryable(self):
        error = RateLimitError(retry_after=2.5)
        assert error.is_retryable is True
        assert error.status_code == 429
        assert error.retry_after == 2.5

    def test_authentication_not_retryable(self):
        error = AuthenticationError()
        assert error.is_retryable is False
        assert error.status_code == 401

    def test_context_length_carries_max_tokens(self):
        error = ContextLengthError("too long", max_tokens=8192)
        assert error.max_tokens == 8192
        assert error.is_retryable is False

    def test_timeout_carries_duration(self):
        error = GenerationTimeoutError("slow", timeout_seconds=30.0)
        assert error.timeout_seconds == 30.0
        assert error.status_code == 408
        assert error.is_retryable is False

    def test_default_messages(self):
        assert str(EmptyResponseError()) == "Backend returned an empty response"
        assert str(InvocationCancelledError()) == "Invocation cancelled"
