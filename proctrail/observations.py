"""Non-fatal observations reported by recorders instead of raising."""

from __future__ import annotations

from typing import List, Optional, Protocol

from pydantic import BaseModel


class NonFatalObservation(BaseModel):
    """An audit write that failed without failing the workflow."""

    operation: str
    phase: str
    subject_id: str
    message: str
    error_type: Optional[str] = None


class ObservationSink(Protocol):
    """Receiver of non-fatal observations."""

    def observe(self, observation: NonFatalObservation) -> None:
        """Handle a single observation."""


class CollectingObservationSink:
    """Keep observations in memory for inspection."""

    def __init__(self) -> None:
        self.observations: List[NonFatalObservation] = []

    def observe(self, observation: NonFatalObservation) -> None:
        self.observations.append(observation)

    def clear(self) -> None:
        self.observations.clear()

    def __len__(self) -> int:
        return len(self.observations)
