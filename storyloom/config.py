"""Application configuration using pydantic-settings."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ProviderType = Literal["anthropic", "openai", "scripted"]

VALID_PROVIDERS: tuple[str, ...] = ("anthropic", "openai", "scripted")


@dataclass
class ProviderConfig:
    """Parsed provider:model configuration."""

    provider: ProviderType
    model: str


def parse_provider_config(value: str, default_provider: ProviderType = "anthropic") -> ProviderConfig:
    """Parse 'provider:model' format into ProviderConfig.

    Args:
        value: String in format 'provider:model' or just 'model'.
        default_provider: Provider to use if only model is specified.

    Returns:
        ProviderConfig with provider and model.

    Examples:
        >>> parse_provider_config("anthropic:claude-3-5-haiku-20241022")
        ProviderConfig(provider='anthropic', model='claude-3-5-haiku-20241022')

        >>> parse_provider_config("openai:gpt-4o-mini")
        ProviderConfig(provider='openai', model='gpt-4o-mini')

        >>> parse_provider_config("claude-sonnet-4-20250514")  # No provider prefix
        ProviderConfig(provider='anthropic', model='claude-sonnet-4-20250514')
    """
    if ":" in value:
        first_part = value.split(":")[0]
        if first_part in VALID_PROVIDERS:
            model = value[len(first_part) + 1 :]  # Everything after 'provider:'
            return ProviderConfig(provider=first_part, model=model)  # type: ignore

    return ProviderConfig(provider=default_provider, model=value)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    openai_base_url: str | None = None  # Custom endpoint for vLLM/DeepSeek

    # ==========================================================================
    # Role-Specific Backend Configuration (provider:model format)
    # ==========================================================================
    # Examples:
    #   NARRATOR=anthropic:claude-sonnet-4-20250514
    #   CHARACTER=openai:gpt-4o
    #   SUMMARY=anthropic:claude-3-5-haiku-20241022

    narrator: str = "anthropic:claude-sonnet-4-20250514"  # Primary narration
    character: str = "anthropic:claude-sonnet-4-20250514"  # In-character dialogue
    summary: str = "anthropic:claude-3-5-haiku-20241022"  # Recaps
    consistency: str = "anthropic:claude-3-5-haiku-20241022"  # Fact checking

    # Generation defaults
    generation_timeout_seconds: float = 60.0
    generation_temperature: float = 0.7
    generation_max_tokens: int = 1024
    generation_top_p: float | None = None  # Sent only when set; some models reject it with temperature
    generation_max_retries: int = 2  # Transient backend errors only

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    max_rewrite_attempts: int = 2
    rewrite_on_major: bool = False  # Major findings alone never block acceptance
    recent_event_window: int = 10
    min_content_length: int = 10
    max_content_length: int = 10000
    forbidden_patterns: list[str] = Field(default_factory=list)
    # Per-role overrides keyed by role name, e.g. MIN_LENGTH_PER_ROLE='{"summary": 40}'
    min_length_per_role: dict[str, int] = Field(default_factory=dict)
    max_length_per_role: dict[str, int] = Field(default_factory=dict)
    consistency_check: bool = False  # Appends a Fallback consistency prompt
    pacing_scale: float = 1.0  # In-fiction seconds per second of generation
    pipeline_timeout_seconds: float | None = None  # Whole submit() call
    stage_timeout_seconds: float | None = None  # Each execution or rewrite pass

    # Audit
    audit_capacity: int = 10000

    # Debug
    debug: bool = False
    log_llm_calls: bool = False

    # ==========================================================================
    # Parsed Configuration Properties
    # ==========================================================================

    @property
    def narrator_config(self) -> ProviderConfig:
        """Get parsed narrator provider config."""
        return parse_provider_config(self.narrator)

    @property
    def character_config(self) -> ProviderConfig:
        """Get parsed character provider config."""
        return parse_provider_config(self.character)

    @property
    def summary_config(self) -> ProviderConfig:
        """Get parsed summary provider config."""
        return parse_provider_config(self.summary)

    @property
    def consistency_config(self) -> ProviderConfig:
        """Get parsed consistency provider config."""
        return parse_provider_config(self.consistency)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience alias
settings = get_settings()
