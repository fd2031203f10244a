"""Generation capability: the pluggable backend the executor calls.

Any object with ``async generate(request) -> GenerationResult`` qualifies.
``ProviderGenerator`` adapts an LLMProvider, ``RoleRoutedGenerator`` picks a
backend per agent role and ``ScriptedGenerator`` (see scripted.py) is the
deterministic double used in tests.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Protocol, runtime_checkable

from storyloom.config import Settings, get_settings
from storyloom.llm.base import LLMProvider
from storyloom.llm.exceptions import EmptyResponseError, GenerationTimeoutError
from storyloom.llm.factory import create_provider
from storyloom.llm.types import Message
from storyloom.llm.retry import RetryConfig, with_retry
from storyloom.pipeline.schemas import AgentRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationParameters:
    """Sampling parameters for one invocation."""

    temperature: float = 0.7
    max_tokens: int = 1024
    top_p: float | None = None
    stop_sequences: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationParameters":
        return cls(
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
            top_p=settings.generation_top_p,
        )


@dataclass(frozen=True)
class GenerationRequest:
    """What the executor asks a backend to produce.

    Attributes:
        role: Agent role the request is for.
        system_prompt: System-level instructions.
        user_prompt: The task itself.
        parameters: Sampling overrides; None uses the backend's defaults.
        metadata: Informational values (e.g. rewrite attempt).
    """

    role: AgentRole
    system_prompt: str
    user_prompt: str
    parameters: GenerationParameters | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass(frozen=True)
class GenerationResult:
    """Text produced by a backend plus accounting."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_seconds: float = 0.0
    model: str = ""


@runtime_checkable
class GenerationCapability(Protocol):
    """Protocol for generation backends.

    Implementations raise an ``LLMError`` subclass on failure and are
    responsible for enforcing their own timeout.
    """

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...


class ProviderGenerator:
    """Adapts an LLMProvider to the generation capability.

    Transient provider errors are retried with backoff; the whole call,
    retries included, is bounded by ``timeout_seconds``.
    """

    def __init__(
        self,
        provider: LLMProvider,
        parameters: GenerationParameters | None = None,
        timeout_seconds: float = 60.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            provider: Backend to call.
            parameters: Default sampling parameters.
            timeout_seconds: Per-invocation timeout.
            retry_config: Backoff settings for transient errors.
        """
        self.provider = provider
        self.parameters = parameters or GenerationParameters()
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or RetryConfig()

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        params = request.parameters or self.parameters
        start_time = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                with_retry(
                    self.provider.complete,
                    messages=[Message.user(request.user_prompt)],
                    max_tokens=params.max_tokens,
                    temperature=params.temperature,
                    stop_sequences=params.stop_sequences or None,
                    system_prompt=request.system_prompt,
                    top_p=params.top_p,
                    config=self.retry_config,
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as e:
            raise GenerationTimeoutError(
                f"{self.provider.provider_name} did not answer within {self.timeout_seconds}s",
                timeout_seconds=self.timeout_seconds,
            ) from e

        if response.is_blank:
            raise EmptyResponseError(f"{self.provider.provider_name} returned an empty response")

        usage = response.usage
        return GenerationResult(
            content=response.content,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            duration_seconds=time.perf_counter() - start_time,
            model=response.model or self.provider.default_model,
        )


class RoleRoutedGenerator:
    """Dispatches each request to the backend configured for its role."""

    def __init__(
        self,
        routes: Mapping[AgentRole, GenerationCapability],
        default: GenerationCapability | None = None,
    ) -> None:
        if not routes and default is None:
            raise ValueError("RoleRoutedGenerator needs at least one route or a default")
        self.routes = dict(routes)
        self.default = default

    def backend_for(self, role: AgentRole) -> GenerationCapability:
        backend = self.routes.get(role, self.default)
        if backend is None:
            raise LookupError(f"No generation backend configured for role {role.value}")
        return backend

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        return await self.backend_for(request.role).generate(request)


def create_role_generator(settings: Settings | None = None) -> RoleRoutedGenerator:
    """Build a role-routed generator from per-role provider:model settings.

    Roles configured with the ``scripted`` provider get a ScriptedGenerator
    that echoes a fixed line, which is handy for offline runs.
    """
    settings = settings or get_settings()
    parameters = GenerationParameters.from_settings(settings)
    configs = {
        AgentRole.NARRATOR: settings.narrator_config,
        AgentRole.CHARACTER: settings.character_config,
        AgentRole.SUMMARY: settings.summary_config,
        AgentRole.CONSISTENCY: settings.consistency_config,
    }

    routes: dict[AgentRole, GenerationCapability] = {}
    for role, config in configs.items():
        if config.provider == "scripted":
            from storyloom.pipeline.scripted import ScriptedGenerator

            routes[role] = ScriptedGenerator()
        else:
            routes[role] = ProviderGenerator(
                create_provider(config, settings),
                parameters=parameters,
                timeout_seconds=settings.generation_timeout_seconds,
                retry_config=RetryConfig.from_settings(settings),
            )
        logger.debug("Role %s routed to %s:%s", role.value, config.provider, config.model)
    return RoleRoutedGenerator(routes)
