"""Recorded clock readings and activity outcomes of one workflow execution."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, PrivateAttr


class ActivityOutcome(BaseModel):
    """Result of one dispatched activity as seen by the workflow."""

    name: str
    input: str = Field(..., description="Serialized activity input")
    result: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    attempts: int = 1

    @property
    def failed(self) -> bool:
        return self.error is not None


class WorkflowHistory(BaseModel):
    """Deterministic history consumed in order while replaying.

    A fresh history records every reading. A history obtained through
    :meth:`replay` hands the recorded readings back in the same order before
    recording anything new.
    """

    timestamps: List[datetime] = Field(default_factory=list)
    activities: List[ActivityOutcome] = Field(default_factory=list)

    _time_cursor: int = PrivateAttr(default=0)
    _activity_cursor: int = PrivateAttr(default=0)

    @property
    def is_replaying(self) -> bool:
        return self.has_pending_timestamp() or self.has_pending_activity()

    def has_pending_timestamp(self) -> bool:
        return self._time_cursor < len(self.timestamps)

    def has_pending_activity(self) -> bool:
        return self._activity_cursor < len(self.activities)

    def last_timestamp(self) -> Optional[datetime]:
        return self.timestamps[self._time_cursor - 1] if self._time_cursor else None

    def next_timestamp(self) -> Optional[datetime]:
        """Return the next recorded reading, or ``None`` once history is exhausted."""
        if not self.has_pending_timestamp():
            return None
        value = self.timestamps[self._time_cursor]
        self._time_cursor += 1
        return value

    def record_timestamp(self, value: datetime) -> None:
        self.timestamps.append(value)
        self._time_cursor = len(self.timestamps)

    def next_activity(self) -> Optional[ActivityOutcome]:
        if not self.has_pending_activity():
            return None
        outcome = self.activities[self._activity_cursor]
        self._activity_cursor += 1
        return outcome

    def record_activity(self, outcome: ActivityOutcome) -> None:
        self.activities.append(outcome)
        self._activity_cursor = len(self.activities)

    def replay(self) -> "WorkflowHistory":
        """Return a copy positioned at the start of the recorded history."""
        return WorkflowHistory(
            timestamps=list(self.timestamps),
            activities=[a.model_copy() for a in self.activities],
        )
