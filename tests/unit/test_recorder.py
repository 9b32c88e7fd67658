"""Recorder lifecycle tests."""

import asyncio
import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError

from proctrail.context import ExecutionInfo, WorkflowContext
from proctrail.models import ProcessLogActivityInput, Status
from proctrail.observations import CollectingObservationSink
from proctrail.recorder import (
    EventRecorder,
    ProcessRecorder,
    RecorderClosedError,
    describe_error,
    track_event,
    track_process,
)
from tests.fixtures.services import (
    FailingAuditService,
    FlakyAuditService,
    RecordingAuditService,
    T0,
    make_context,
    make_runtime,
)


@pytest.mark.asyncio
async def test_process_open_then_close_writes_running_then_finished():
    service = RecordingAuditService()
    ctx = make_context(service, execution_id="wf-1", workflow_type="cluster-create")

    recorder = await ProcessRecorder.open(ctx, 7, "cluster-42")
    await recorder.close()

    assert len(service.process_writes) == 2
    first, second = service.process_writes
    assert first.id == second.id == "wf-1"
    assert first.status is Status.RUNNING
    assert first.started_at == T0
    assert first.finished_at is None
    assert first.org_id == 7
    assert first.resource_id == "cluster-42"
    assert first.type == "cluster-create"

    assert second.status is Status.FINISHED
    assert second.started_at == first.started_at
    assert second.finished_at >= first.started_at
    assert second.log == ""

    stored = await service.get_process("wf-1")
    assert stored.status is Status.FINISHED


@pytest.mark.asyncio
async def test_event_close_with_error_writes_failed_with_message():
    service = RecordingAuditService()
    ctx = make_context(service, execution_id="wf-1")

    recorder = await EventRecorder.open(ctx, "create-worker-pool")
    await recorder.close(RuntimeError("stack already exists"))

    assert len(service.event_writes) == 2
    first, second = service.event_writes
    assert first.process_id == second.process_id == "wf-1"
    assert first.type == second.type == "create-worker-pool"
    assert first.status is Status.RUNNING
    assert second.status is Status.FAILED
    assert second.log == "stack already exists"
    assert second.timestamp >= first.timestamp


@pytest.mark.asyncio
async def test_open_reports_warning_when_process_log_fails(caplog):
    service = FailingAuditService()
    sink = CollectingObservationSink()
    ctx = make_context(service, sinks=[sink])

    with caplog.at_level(logging.WARNING, logger="proctrail.workflow"):
        recorder = await ProcessRecorder.open(ctx, 7, "cluster-42")

    assert recorder.input.status is Status.RUNNING
    assert len(sink) == 1
    observation = sink.observations[0]
    assert observation.operation == "process-log"
    assert observation.phase == "start"
    assert observation.subject_id == "wf-1"
    assert observation.error_type == "ActivityError"
    assert "audit store unavailable" in observation.message
    assert any(
        r.name == "proctrail.workflow" and "failed to log process-log start" in r.getMessage()
        for r in caplog.records
    )


@pytest.mark.asyncio
async def test_failing_service_never_raises_to_the_workflow():
    service = FailingAuditService()
    sink = CollectingObservationSink()
    ctx = make_context(service, sinks=[sink])

    process = await ProcessRecorder.open(ctx, 7, "cluster-42")
    event = await EventRecorder.open(ctx, "create-worker-pool")
    await event.close(ValueError("boom"))
    finalized = await process.close()

    assert finalized.status is Status.FINISHED
    assert [o.phase for o in sink.observations] == ["start", "start", "end", "end"]
    # three attempts for each of the four writes
    assert service.calls == 12
    assert await service.list_processes() == []


@pytest.mark.asyncio
async def test_transient_failure_is_retried_without_warning():
    service = FlakyAuditService(failures=1)
    sink = CollectingObservationSink()
    ctx = make_context(service, sinks=[sink])

    recorder = await ProcessRecorder.open(ctx, 7, "cluster-42")
    await recorder.close()

    assert len(sink) == 0
    stored = await service.get_process("wf-1")
    assert stored.status is Status.FINISHED
    assert ctx.history.activities[0].attempts == 2


@pytest.mark.asyncio
async def test_close_without_error_keeps_log():
    service = RecordingAuditService()
    ctx = make_context(service)
    opened = ProcessLogActivityInput(
        id="wf-1",
        org_id=7,
        type="cluster-create",
        log="provisioning",
        status=Status.RUNNING,
        started_at=T0,
    )

    finalized = await ProcessRecorder(ctx, opened).close()

    assert finalized.status is Status.FINISHED
    assert finalized.log == "provisioning"
    assert finalized.finished_at is not None
    assert opened.status is Status.RUNNING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [ValueError("invalid node pool"), KeyError("pool"), RuntimeError("")],
)
async def test_close_with_error_marks_failed(error):
    service = RecordingAuditService()
    ctx = make_context(service)

    recorder = await ProcessRecorder.open(ctx, 7, "cluster-42")
    finalized = await recorder.close(error)

    assert finalized.status is Status.FAILED
    assert finalized.log == describe_error(error)
    assert finalized.log == (str(error) or type(error).__name__)
    stored = await service.get_process("wf-1")
    assert stored.status is Status.FAILED
    assert stored.log == finalized.log


@pytest.mark.asyncio
async def test_parent_id_resolution():
    service = RecordingAuditService()

    root = await ProcessRecorder.open(make_context(service, execution_id="root"), 7, "c")
    child = await ProcessRecorder.open(
        make_context(service, execution_id="child", parent_execution_id="root"), 7, "c"
    )

    assert root.input.parent_id == ""
    assert child.input.parent_id == "root"


@pytest.mark.asyncio
async def test_second_close_raises_and_writes_nothing():
    service = RecordingAuditService()
    ctx = make_context(service)

    process = await ProcessRecorder.open(ctx, 7, "cluster-42")
    event = await EventRecorder.open(ctx, "create-worker-pool")
    await event.close()
    await process.close()

    with pytest.raises(RecorderClosedError):
        await process.close(ValueError("late"))
    with pytest.raises(RecorderClosedError):
        await event.close()

    assert len(service.process_writes) == 2
    assert len(service.event_writes) == 2
    stored = await service.get_process("wf-1")
    assert stored.status is Status.FINISHED
    assert stored.log == ""


@pytest.mark.asyncio
async def test_track_process_closes_with_block_outcome():
    service = RecordingAuditService()
    ctx = make_context(service)

    async with track_process(ctx, 7, "cluster-42") as recorder:
        async with track_event(ctx, "create-worker-pool"):
            pass

    assert recorder.closed
    stored = await service.get_process("wf-1")
    assert stored.status is Status.FINISHED
    assert [(e.type, e.status) for e in stored.events] == [
        ("create-worker-pool", Status.RUNNING),
        ("create-worker-pool", Status.FINISHED),
    ]


@pytest.mark.asyncio
async def test_track_process_records_and_reraises_errors():
    service = RecordingAuditService()
    ctx = make_context(service)

    with pytest.raises(RuntimeError, match="stack already exists"):
        async with track_process(ctx, 7, "cluster-42"):
            async with track_event(ctx, "create-worker-pool"):
                raise RuntimeError("stack already exists")

    stored = await service.get_process("wf-1")
    assert stored.status is Status.FAILED
    assert stored.log == "stack already exists"
    assert stored.events[-1].status is Status.FAILED
    assert stored.events[-1].log == "stack already exists"


@pytest.mark.asyncio
async def test_track_process_respects_explicit_close():
    service = RecordingAuditService()
    ctx = make_context(service)

    async with track_process(ctx, 7, "cluster-42") as recorder:
        await recorder.close(ValueError("aborted"))

    assert len(service.process_writes) == 2
    stored = await service.get_process("wf-1")
    assert stored.status is Status.FAILED


@pytest.mark.asyncio
async def test_cancelled_workflow_leaves_process_running():
    service = RecordingAuditService()
    ctx = make_context(service)

    with pytest.raises(asyncio.CancelledError):
        async with track_process(ctx, 7, "cluster-42"):
            ctx.cancel()
            raise asyncio.CancelledError()

    stored = await service.get_process("wf-1")
    assert stored.status is Status.RUNNING
    assert stored.finished_at is None


@pytest.mark.asyncio
async def test_close_after_cancel_propagates_cancellation():
    service = RecordingAuditService()
    ctx = make_context(service)

    recorder = await EventRecorder.open(ctx, "create-worker-pool")
    ctx.cancel()
    with pytest.raises(asyncio.CancelledError):
        await recorder.close()

    assert [e.status for e in service.event_writes] == [Status.RUNNING]


@pytest.mark.asyncio
async def test_event_timestamps_do_not_decrease():
    service = RecordingAuditService()
    ctx = make_context(service)

    for step in ("create-vpc", "create-master", "create-worker-pool"):
        async with track_event(ctx, step):
            pass

    timestamps = [e.timestamp for e in service.event_writes]
    assert timestamps == sorted(timestamps)


class FixedClock:
    def now(self):
        return T0


class BackwardsClock:
    def __init__(self):
        self._readings = iter([T0, T0 - timedelta(seconds=5)])

    def now(self):
        return next(self._readings)


def _context_with_clock(service, clock):
    runtime = make_runtime(service)
    info = ExecutionInfo(execution_id="wf-1", workflow_type="cluster-create")
    return WorkflowContext(info, runtime.dispatcher, clock=clock)


@pytest.mark.asyncio
async def test_same_step_at_the_same_instant_is_stored_twice():
    service = RecordingAuditService()
    ctx = _context_with_clock(service, FixedClock())
    await ProcessRecorder.open(ctx, 7, "cluster-42")

    first = await EventRecorder.open(ctx, "create-worker-pool")
    second = await EventRecorder.open(ctx, "create-worker-pool")
    await first.close(RuntimeError("first"))
    await second.close(RuntimeError("second"))

    stored = (await service.get_process("wf-1")).events
    assert [(e.status, e.log) for e in stored] == [
        (Status.RUNNING, ""),
        (Status.RUNNING, ""),
        (Status.FAILED, "first"),
        (Status.FAILED, "second"),
    ]
    assert len({e.sequence for e in stored}) == 4


@pytest.mark.asyncio
async def test_close_rejects_clock_running_backwards():
    service = RecordingAuditService()
    ctx = _context_with_clock(service, BackwardsClock())
    recorder = await ProcessRecorder.open(ctx, 7, "cluster-42")

    with pytest.raises(ValidationError):
        await recorder.close()

    assert not recorder.closed
    assert recorder.input.status is Status.RUNNING
    assert [w.status for w in service.process_writes] == [Status.RUNNING]
