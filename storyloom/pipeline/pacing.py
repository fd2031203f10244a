"""Pacing policies: how far in-fiction time advances per accepted beat."""

from datetime import timedelta
from typing import Protocol, runtime_checkable

from storyloom.pipeline.schemas import NarrativeContext, RawOutput


@runtime_checkable
class PacingPolicy(Protocol):
    """Decides the time advance proposed for one pipeline run."""

    def time_advance(self, raw: RawOutput, context: NarrativeContext) -> timedelta:
        ...


class LatencyPacing:
    """Advances fiction time by the run's generation duration times ``scale``."""

    def __init__(self, scale: float = 1.0) -> None:
        if scale < 0:
            raise ValueError("scale must not be negative")
        self.scale = scale

    def time_advance(self, raw: RawOutput, context: NarrativeContext) -> timedelta:
        return timedelta(seconds=raw.total_duration_seconds * self.scale)


class FixedPacing:
    """Advances fiction time by the same step for every beat."""

    def __init__(self, step: timedelta) -> None:
        if step < timedelta(0):
            raise ValueError("step must not be negative")
        self.step = step

    def time_advance(self, raw: RawOutput, context: NarrativeContext) -> timedelta:
        return self.step
