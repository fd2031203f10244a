"""Core test fixtures for narrative pipeline tests."""

import pytest

from storyloom.audit.trail import AuditTrail
from storyloom.config import Settings
from storyloom.pipeline.schemas import NarrativeContext
from storyloom.pipeline.scripted import ScriptedGenerator
from storyloom.pipeline.state import NarrativeState
from tests.factories import create_context, create_state


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-anthropic-key",
        openai_api_key="test-openai-key",
        narrator="scripted:narrator",
        character="scripted:character",
        summary="scripted:summary",
        consistency="scripted:consistency",
    )


@pytest.fixture
def audit_trail() -> AuditTrail:
    """Fresh audit trail for each test."""
    return AuditTrail(capacity=1000)


@pytest.fixture
def generator() -> ScriptedGenerator:
    """Scripted generator with the default reply."""
    return ScriptedGenerator()


@pytest.fixture
def context() -> NarrativeContext:
    """Context with a single active participant and no location."""
    return create_context()


@pytest.fixture
def state() -> NarrativeState:
    """In-memory narrative state."""
    return create_state()
