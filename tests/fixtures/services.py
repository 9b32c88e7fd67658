"""Audit service doubles and runtime helpers shared by the tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from proctrail.activities import build_activity_registry
from proctrail.config import RetryPolicyConfig
from proctrail.context import ExecutionInfo, SteppingClock, WorkflowContext
from proctrail.engine import LocalWorkflowRuntime
from proctrail.models import Process, ProcessEvent
from proctrail.observations import ObservationSink
from proctrail.service import AuditService, InMemoryAuditService

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

FAST_RETRY = RetryPolicyConfig(
    maximum_attempts=3, initial_interval=0, maximum_interval=0, jitter=0
)


class RecordingAuditService(InMemoryAuditService):
    """In-memory service that keeps a copy of every write it receives."""

    def __init__(self) -> None:
        super().__init__()
        self.process_writes: List[Process] = []
        self.event_writes: List[ProcessEvent] = []

    async def log_process(self, process: Process) -> str:
        self.process_writes.append(process.model_copy())
        return await super().log_process(process)

    async def log_process_event(self, event: ProcessEvent) -> int:
        self.event_writes.append(event.model_copy())
        return await super().log_process_event(event)


class FlakyAuditService(RecordingAuditService):
    """Fails the first ``failures`` calls with a transient error."""

    def __init__(self, failures: int, error: Optional[Exception] = None) -> None:
        super().__init__()
        self.failures = failures
        self.error = error or ConnectionError("audit store unavailable")
        self.calls = 0

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error

    async def log_process(self, process: Process) -> str:
        self._maybe_fail()
        return await super().log_process(process)

    async def log_process_event(self, event: ProcessEvent) -> int:
        self._maybe_fail()
        return await super().log_process_event(event)


class FailingAuditService(FlakyAuditService):
    """Fails every call."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__(failures=10**9, error=error)


def make_runtime(
    service: AuditService,
    sinks: Iterable[ObservationSink] = (),
    retry_policy: RetryPolicyConfig = FAST_RETRY,
) -> LocalWorkflowRuntime:
    """Runtime with immediate retries and a one-second stepping clock."""
    return LocalWorkflowRuntime(
        build_activity_registry(service),
        retry_policy=retry_policy,
        sinks=sinks,
        clock_source=SteppingClock(T0, timedelta(seconds=1)).now,
    )


def make_context(
    service: AuditService,
    execution_id: str = "wf-1",
    workflow_type: str = "cluster-create",
    parent_execution_id: Optional[str] = None,
    sinks: Iterable[ObservationSink] = (),
) -> WorkflowContext:
    runtime = make_runtime(service, sinks=sinks)
    return runtime.new_context(
        ExecutionInfo(
            execution_id=execution_id,
            workflow_type=workflow_type,
            parent_execution_id=parent_execution_id,
        )
    )
