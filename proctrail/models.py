"""Process and event records of the audit trail."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import MAX_ORG_ID


class Status(str, Enum):
    """Lifecycle status shared by processes and events."""

    RUNNING = "running"
    FAILED = "failed"
    FINISHED = "finished"

    @property
    def is_terminal(self) -> bool:
        return self is not Status.RUNNING

    def can_transition_to(self, other: "Status") -> bool:
        """Only ``running`` may move, and only to a terminal status."""
        return self is Status.RUNNING and other.is_terminal


def _check_process_times(
    status: Status, started_at: datetime, finished_at: Optional[datetime]
) -> None:
    if status is Status.RUNNING and finished_at is not None:
        raise ValueError("finished_at must be unset while the process is running")
    if status.is_terminal and finished_at is None:
        raise ValueError(f"finished_at is required for a {status.value} process")
    if finished_at is not None and finished_at < started_at:
        raise ValueError("finished_at must not be earlier than started_at")


class ProcessEvent(BaseModel):
    """Audit record of one named sub-step within a process."""

    id: Optional[int] = None
    process_id: str
    type: str
    log: str = ""
    status: Status
    timestamp: datetime
    # dispatch number within the execution; tells apart same-named steps
    # recorded at the same instant
    sequence: int = Field(default=0, ge=0)


class Process(BaseModel):
    """Audit record of one trackable workflow execution."""

    id: str
    parent_id: str = ""
    org_id: int = Field(ge=0, le=MAX_ORG_ID)
    type: str
    log: str = ""
    resource_id: str = ""
    status: Status
    started_at: datetime
    finished_at: Optional[datetime] = None
    events: List[ProcessEvent] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_lifecycle(self) -> "Process":
        _check_process_times(self.status, self.started_at, self.finished_at)
        return self


class ProcessLogActivityInput(BaseModel):
    """Flat input of the ``process-log`` activity."""

    model_config = ConfigDict(frozen=True)

    id: str
    parent_id: str = ""
    org_id: int = Field(ge=0, le=MAX_ORG_ID)
    type: str
    log: str = ""
    resource_id: str = ""
    status: Status
    started_at: datetime
    finished_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _validate_lifecycle(self) -> "ProcessLogActivityInput":
        _check_process_times(self.status, self.started_at, self.finished_at)
        return self

    def to_process(self) -> Process:
        return Process(
            id=self.id,
            parent_id=self.parent_id,
            org_id=self.org_id,
            type=self.type,
            log=self.log,
            resource_id=self.resource_id,
            status=self.status,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class ProcessEventActivityInput(BaseModel):
    """Flat input of the ``process-event`` activity."""

    model_config = ConfigDict(frozen=True)

    process_id: str
    type: str
    log: str = ""
    status: Status
    timestamp: datetime
    sequence: int = Field(default=0, ge=0)

    def to_event(self) -> ProcessEvent:
        return ProcessEvent(
            process_id=self.process_id,
            type=self.type,
            log=self.log,
            status=self.status,
            timestamp=self.timestamp,
            sequence=self.sequence,
        )
