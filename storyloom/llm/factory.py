"""LLM provider factory.

Creates provider instances from role-specific provider:model configuration.
"""

from storyloom.config import ProviderConfig, Settings, get_settings
from storyloom.llm.base import LLMProvider
from storyloom.llm.anthropic_provider import AnthropicProvider
from storyloom.llm.openai_provider import OpenAIProvider
from storyloom.llm.logging_provider import LoggingProvider
from storyloom.llm.exceptions import UnsupportedProviderError


def create_provider(
    config: ProviderConfig,
    settings: Settings | None = None,
) -> LLMProvider:
    """Create an LLM provider from a ProviderConfig.

    Args:
        config: Parsed provider configuration with provider type and model.
        settings: Settings to read API keys from (defaults to cached settings).

    Returns:
        Configured LLMProvider instance.

    Raises:
        UnsupportedProviderError: If provider type has no network backend.
    """
    settings = settings or get_settings()

    if config.provider == "anthropic":
        provider: LLMProvider = AnthropicProvider(
            api_key=settings.anthropic_api_key,
            default_model=config.model,
        )
    elif config.provider == "openai":
        provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=config.model,
            base_url=settings.openai_base_url,
        )
    else:
        raise UnsupportedProviderError(f"Provider '{config.provider}' is not supported")

    # Wrap with logging if enabled
    if settings.log_llm_calls:
        provider = LoggingProvider(provider)

    return provider
