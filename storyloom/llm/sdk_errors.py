"""Translation of vendor SDK exceptions into the storyloom.llm hierarchy.

The anthropic and openai SDKs expose the same exception layout
(``APIError`` > ``APIConnectionError`` > ``APITimeoutError`` and
``APIError`` > ``APIStatusError`` > per-status subclasses), so one
translator serves both. The SDK module is passed in explicitly.
"""

from types import ModuleType

from storyloom.llm.exceptions import (
    AuthenticationError,
    ContentPolicyError,
    ContextLengthError,
    GenerationTimeoutError,
    LLMError,
    ProviderError,
    RateLimitError,
)

# Lower-cased phrases backends use when rejecting a request outright
CONTEXT_MARKERS = (
    "context length",
    "context window",
    "maximum context",
    "prompt is too long",
    "too many tokens",
)
POLICY_MARKERS = ("content policy", "content_policy", "safety", "flagged")


def retry_after_seconds(error: Exception) -> float | None:
    """Seconds the backend asked us to wait, from a ``retry-after`` header."""
    headers = getattr(getattr(error, "response", None), "headers", None)
    if headers is None or not hasattr(headers, "get"):
        return None
    value = headers.get("retry-after")
    if not isinstance(value, str):
        return None
    try:
        return float(value)
    except ValueError:
        return None


def translate_sdk_error(error: Exception, sdk: ModuleType, provider_name: str) -> LLMError:
    """Map an SDK ``APIError`` to our equivalent.

    Args:
        error: Exception raised by the SDK client.
        sdk: The SDK module (``anthropic`` or ``openai``).
        provider_name: Prefix for the message.

    Returns:
        The translated exception, for the caller to raise.
    """
    message = f"{provider_name}: {error}"

    if isinstance(error, sdk.APITimeoutError):
        return GenerationTimeoutError(message)
    if isinstance(error, sdk.APIConnectionError):
        return ProviderError(message, is_retryable=True)
    if isinstance(error, sdk.AuthenticationError):
        return AuthenticationError(message)
    if isinstance(error, sdk.RateLimitError):
        return RateLimitError(message, retry_after=retry_after_seconds(error))
    if isinstance(error, sdk.BadRequestError):
        lowered = str(error).lower()
        if any(marker in lowered for marker in CONTEXT_MARKERS):
            return ContextLengthError(message)
        if any(marker in lowered for marker in POLICY_MARKERS):
            return ContentPolicyError(message)
        return ProviderError(message, is_retryable=False, status_code=400)
    if isinstance(error, sdk.APIStatusError):
        status_code = error.status_code
        return ProviderError(message, is_retryable=status_code >= 500, status_code=status_code)
    return ProviderError(message, is_retryable=False)
