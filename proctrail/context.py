"""Explicit workflow context handed to every recorder operation."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .history import WorkflowHistory
from .observations import NonFatalObservation, ObservationSink

if TYPE_CHECKING:
    from .engine.base import ActivityDispatcher

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionInfo(BaseModel):
    """Identity of the running workflow execution, as reported by the engine."""

    model_config = ConfigDict(frozen=True)

    execution_id: str
    workflow_type: str
    parent_execution_id: Optional[str] = None


class Clock(Protocol):
    """Source of workflow time."""

    def now(self) -> datetime:
        """Return the current workflow time."""


class HistoryClock:
    """Deterministic clock backed by a :class:`WorkflowHistory`.

    Readings are taken from ``source`` and recorded; during replay the
    recorded readings are returned instead. Time never goes backwards.
    """

    def __init__(
        self,
        history: WorkflowHistory,
        source: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._history = history
        self._source = source or utcnow
        self.replayed_last = False

    def now(self) -> datetime:
        recorded = self._history.next_timestamp()
        if recorded is not None:
            self.replayed_last = True
            return recorded
        self.replayed_last = False
        current = self._source()
        last = self._history.last_timestamp()
        if last is not None and current < last:
            current = last
        self._history.record_timestamp(current)
        return current


class SteppingClock:
    """Clock that advances by a fixed step on every reading."""

    def __init__(
        self,
        start: Optional[datetime] = None,
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self._current = start or datetime(2020, 1, 1, tzinfo=timezone.utc)
        self._step = step

    def now(self) -> datetime:
        value = self._current
        self._current = value + self._step
        return value


class WorkflowLoggerAdapter(logging.LoggerAdapter):
    """Logger tagged with the execution id that stays silent during replay."""

    def __init__(self, base: logging.Logger, ctx: "WorkflowContext") -> None:
        super().__init__(
            base,
            {
                "execution_id": ctx.info.execution_id,
                "workflow_type": ctx.info.workflow_type,
            },
        )
        self._ctx = ctx

    def isEnabledFor(self, level: int) -> bool:
        if self._ctx.is_replaying:
            return False
        return super().isEnabledFor(level)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['execution_id']}] {msg}", kwargs


class WorkflowContext:
    """Deterministic time, execution identity, activity dispatch and cancellation.

    Recorders receive the context explicitly; nothing is read from ambient
    state.
    """

    def __init__(
        self,
        info: ExecutionInfo,
        dispatcher: "ActivityDispatcher",
        history: Optional[WorkflowHistory] = None,
        clock: Optional[Clock] = None,
        sinks: Iterable[ObservationSink] = (),
        base_logger: Optional[logging.Logger] = None,
    ) -> None:
        self.info = info
        self.history = history if history is not None else WorkflowHistory()
        self._clock = clock or HistoryClock(self.history)
        self._dispatcher = dispatcher
        self._sinks: List[ObservationSink] = list(sinks)
        self._cancelled = False
        self._sequence = 0
        self._replaying = self.history.is_replaying
        self.logger = WorkflowLoggerAdapter(
            base_logger or logging.getLogger("proctrail.workflow"), self
        )

    @property
    def is_replaying(self) -> bool:
        """Whether the most recent deterministic step came from history."""
        return self._replaying

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation; later activity dispatches are refused."""
        self._cancelled = True

    def now(self) -> datetime:
        value = self._clock.now()
        if isinstance(self._clock, HistoryClock):
            self._replaying = self._clock.replayed_last
        return value

    def next_sequence(self) -> int:
        """Return the next dispatch number of this execution.

        Numbers restart at 1 for every run, so a replay hands out the same
        numbers in the same order.
        """
        self._sequence += 1
        return self._sequence

    def add_sink(self, sink: ObservationSink) -> None:
        self._sinks.append(sink)

    async def execute_activity(self, name: str, activity_input: BaseModel) -> Any:
        """Dispatch ``activity_input`` to the activity registered as ``name``.

        Raises:
            asyncio.CancelledError: If the context was cancelled.
        """
        if self._cancelled:
            raise asyncio.CancelledError(
                f"workflow {self.info.execution_id} was cancelled"
            )
        self._replaying = self.history.has_pending_activity()
        return await self._dispatcher.execute_activity(self, name, activity_input)

    def report(self, observation: NonFatalObservation) -> None:
        """Log ``observation`` as a warning and forward it to every sink."""
        if self._replaying:
            return
        self.logger.warning(
            "%s (%s %s)", observation.message, observation.operation, observation.phase
        )
        for sink in self._sinks:
            sink.observe(observation)
