"""Local workflow runtime and activity dispatch."""

from __future__ import annotations

from typing import Iterable, Optional

from ..activities import build_activity_registry
from ..config import ProctrailConfig, load_config
from ..observations import ObservationSink
from ..service import AuditService, get_audit_service
from .base import ActivityDispatcher, ActivityError, NondeterminismError
from .local import LocalActivityDispatcher, LocalWorkflowRuntime, WorkflowRun


def create_runtime(
    service: Optional[AuditService] = None,
    config: Optional[ProctrailConfig] = None,
    sinks: Iterable[ObservationSink] = (),
) -> LocalWorkflowRuntime:
    """Factory wiring the audit service, activity registry and retry policy."""

    config = config or load_config()
    if service is None:
        service = get_audit_service(config=config)
    registry = build_activity_registry(service)
    return LocalWorkflowRuntime(
        registry,
        retry_policy=config.activity.retry,
        start_to_close_timeout=config.activity.start_to_close_timeout,
        sinks=sinks,
    )


__all__ = [
    "ActivityDispatcher",
    "ActivityError",
    "LocalActivityDispatcher",
    "LocalWorkflowRuntime",
    "NondeterminismError",
    "WorkflowRun",
    "create_runtime",
]
