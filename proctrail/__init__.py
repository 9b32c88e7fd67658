"""proctrail: audit trail of processes and events for durable workflows."""

from .activities import ActivityRegistry, ProcessLogActivity, build_activity_registry
from .constants import PROCESS_EVENT_ACTIVITY_NAME, PROCESS_LOG_ACTIVITY_NAME
from .context import ExecutionInfo, HistoryClock, SteppingClock, WorkflowContext
from .engine import LocalWorkflowRuntime, create_runtime
from .history import WorkflowHistory
from .models import (
    Process,
    ProcessEvent,
    ProcessEventActivityInput,
    ProcessLogActivityInput,
    Status,
)
from .observations import CollectingObservationSink, NonFatalObservation
from .recorder import (
    EventRecorder,
    ProcessRecorder,
    RecorderClosedError,
    track_event,
    track_process,
)
from .service import get_audit_service

__version__ = "0.1.0"
__all__ = [
    "ActivityRegistry",
    "CollectingObservationSink",
    "EventRecorder",
    "ExecutionInfo",
    "HistoryClock",
    "LocalWorkflowRuntime",
    "NonFatalObservation",
    "PROCESS_EVENT_ACTIVITY_NAME",
    "PROCESS_LOG_ACTIVITY_NAME",
    "Process",
    "ProcessEvent",
    "ProcessEventActivityInput",
    "ProcessLogActivity",
    "ProcessLogActivityInput",
    "ProcessRecorder",
    "RecorderClosedError",
    "Status",
    "SteppingClock",
    "WorkflowContext",
    "WorkflowHistory",
    "build_activity_registry",
    "create_runtime",
    "get_audit_service",
    "track_event",
    "track_process",
]
