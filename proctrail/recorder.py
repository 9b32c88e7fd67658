"""Scoped recorders writing the audit trail of a workflow execution.

A recorder is opened when the workflow starts a trackable unit of work and
closed exactly once with the outcome. Both writes go through the logging
activities; a failed write is reported on the context and never raised, so
the audit trail cannot fail the workflow it describes.

Example::

    async def upgrade_cluster(ctx: WorkflowContext, org_id: int, cluster: str):
        async with track_process(ctx, org_id, cluster):
            async with track_event(ctx, "create-worker-pool"):
                await ctx.execute_activity(...)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, TypeVar

from pydantic import BaseModel

from .constants import PROCESS_EVENT_ACTIVITY_NAME, PROCESS_LOG_ACTIVITY_NAME
from .context import WorkflowContext
from .engine.base import NondeterminismError
from .models import ProcessEventActivityInput, ProcessLogActivityInput, Status
from .observations import NonFatalObservation

InputT = TypeVar("InputT", bound=BaseModel)


class RecorderClosedError(RuntimeError):
    """Raised when a recorder is closed a second time."""


def describe_error(error: BaseException) -> str:
    """Text stored in the audit log for a failed process or event."""
    return str(error) or type(error).__name__


def _finalize(activity_input: InputT, update: dict) -> InputT:
    # model_copy skips validation; a clock running backwards must fail here
    return type(activity_input).model_validate(
        {**activity_input.model_dump(), **update}
    )


async def _dispatch(
    ctx: WorkflowContext,
    operation: str,
    phase: str,
    subject_id: str,
    activity_input: BaseModel,
) -> None:
    try:
        await ctx.execute_activity(operation, activity_input)
    except NondeterminismError:
        raise
    except Exception as e:
        ctx.report(
            NonFatalObservation(
                operation=operation,
                phase=phase,
                subject_id=subject_id,
                message=f"failed to log {operation} {phase}: {e}",
                error_type=type(e).__name__,
            )
        )


class ProcessRecorder:
    """Audit record of one workflow execution."""

    def __init__(self, ctx: WorkflowContext, activity_input: ProcessLogActivityInput):
        self._ctx = ctx
        self._input = activity_input
        self._closed = False

    @classmethod
    async def open(
        cls, ctx: WorkflowContext, org_id: int, resource_id: str
    ) -> "ProcessRecorder":
        """Record the execution in ``ctx`` as running and return its recorder."""
        info = ctx.info
        activity_input = ProcessLogActivityInput(
            id=info.execution_id,
            parent_id=info.parent_execution_id or "",
            org_id=org_id,
            type=info.workflow_type,
            resource_id=resource_id,
            status=Status.RUNNING,
            started_at=ctx.now(),
        )
        await _dispatch(
            ctx, PROCESS_LOG_ACTIVITY_NAME, "start", activity_input.id, activity_input
        )
        return cls(ctx, activity_input)

    @property
    def input(self) -> ProcessLogActivityInput:
        return self._input

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(
        self, error: Optional[BaseException] = None
    ) -> ProcessLogActivityInput:
        """Record the terminal status; ``error`` marks the process failed.

        Raises:
            RecorderClosedError: If the recorder was already closed.
            pydantic.ValidationError: If the clock reads earlier than
                ``started_at``; the recorder stays open.
        """
        if self._closed:
            raise RecorderClosedError(f"process {self._input.id} is already closed")

        update = {"finished_at": self._ctx.now()}
        if error is not None:
            update.update(status=Status.FAILED, log=describe_error(error))
        else:
            update.update(status=Status.FINISHED)
        self._input = _finalize(self._input, update)
        self._closed = True

        await _dispatch(
            self._ctx, PROCESS_LOG_ACTIVITY_NAME, "end", self._input.id, self._input
        )
        return self._input


class EventRecorder:
    """Audit record of one named step of the enclosing process."""

    def __init__(
        self, ctx: WorkflowContext, activity_input: ProcessEventActivityInput
    ):
        self._ctx = ctx
        self._input = activity_input
        self._closed = False

    @classmethod
    async def open(cls, ctx: WorkflowContext, step_name: str) -> "EventRecorder":
        activity_input = ProcessEventActivityInput(
            process_id=ctx.info.execution_id,
            type=step_name,
            status=Status.RUNNING,
            timestamp=ctx.now(),
            sequence=ctx.next_sequence(),
        )
        await _dispatch(
            ctx,
            PROCESS_EVENT_ACTIVITY_NAME,
            "start",
            activity_input.process_id,
            activity_input,
        )
        return cls(ctx, activity_input)

    @property
    def input(self) -> ProcessEventActivityInput:
        return self._input

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(
        self, error: Optional[BaseException] = None
    ) -> ProcessEventActivityInput:
        if self._closed:
            raise RecorderClosedError(
                f"event {self._input.type} of process {self._input.process_id} "
                "is already closed"
            )

        update = {"timestamp": self._ctx.now(), "sequence": self._ctx.next_sequence()}
        if error is not None:
            update.update(status=Status.FAILED, log=describe_error(error))
        else:
            update.update(status=Status.FINISHED)
        self._input = _finalize(self._input, update)
        self._closed = True

        await _dispatch(
            self._ctx,
            PROCESS_EVENT_ACTIVITY_NAME,
            "end",
            self._input.process_id,
            self._input,
        )
        return self._input


@asynccontextmanager
async def _tracked(recorder: ProcessRecorder | EventRecorder) -> AsyncIterator:
    try:
        yield recorder
    except asyncio.CancelledError:
        # the record stays running; cancelled workflows cannot dispatch
        raise
    except NondeterminismError:
        raise
    except Exception as e:
        if not recorder.closed:
            await recorder.close(e)
        raise
    else:
        if not recorder.closed:
            await recorder.close()


@asynccontextmanager
async def track_process(
    ctx: WorkflowContext, org_id: int, resource_id: str
) -> AsyncIterator[ProcessRecorder]:
    """Open a :class:`ProcessRecorder` and close it with the block's outcome."""
    recorder = await ProcessRecorder.open(ctx, org_id, resource_id)
    async with _tracked(recorder):
        yield recorder


@asynccontextmanager
async def track_event(
    ctx: WorkflowContext, step_name: str
) -> AsyncIterator[EventRecorder]:
    """Open an :class:`EventRecorder` and close it with the block's outcome."""
    recorder = await EventRecorder.open(ctx, step_name)
    async with _tracked(recorder):
        yield recorder
