"""In-process activity dispatch with retries and history replay."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ..activities.registry import ActivityDefinition, ActivityRegistry
from ..config import RetryPolicyConfig
from ..constants import REQUIRED_ACTIVITIES
from ..context import ExecutionInfo, HistoryClock, WorkflowContext
from ..history import ActivityOutcome, WorkflowHistory
from ..observations import ObservationSink
from ..utils.retry import schedule_retry
from .base import ActivityDispatcher, ActivityError, NondeterminismError

logger = logging.getLogger(__name__)


class LocalActivityDispatcher(ActivityDispatcher):
    """Execute registered activities in the current event loop.

    Inputs are serialized and re-validated before every attempt so the
    handler only ever sees a copy. Outcomes are recorded in the context's
    history; when the history already holds an outcome for the call, it is
    returned without running the handler.
    """

    def __init__(
        self,
        registry: ActivityRegistry,
        retry_policy: Optional[RetryPolicyConfig] = None,
        start_to_close_timeout: Optional[float] = None,
    ) -> None:
        self._registry = registry
        self._retry_policy = retry_policy or RetryPolicyConfig()
        self._timeout = start_to_close_timeout

    async def execute_activity(
        self, ctx: WorkflowContext, name: str, activity_input: BaseModel
    ) -> Any:
        definition = self._registry.get(name)
        if not isinstance(activity_input, definition.input_type):
            raise TypeError(
                f"activity {name} expects {definition.input_type.__name__}, "
                f"got {type(activity_input).__name__}"
            )
        payload = activity_input.model_dump_json()

        recorded = ctx.history.next_activity()
        if recorded is not None:
            return self._replay(recorded, name, payload)

        outcome, error = await self._run(definition, payload)
        ctx.history.record_activity(outcome)
        if outcome.failed:
            raise ActivityError(
                name, outcome.attempts, outcome.error or "", outcome.error_type
            ) from error
        return outcome.result

    def _replay(self, recorded: ActivityOutcome, name: str, payload: str) -> Any:
        if recorded.name != name or recorded.input != payload:
            raise NondeterminismError(
                f"activity {name} with input {payload} does not match recorded "
                f"activity {recorded.name} with input {recorded.input}"
            )
        if recorded.failed:
            raise ActivityError(
                name, recorded.attempts, recorded.error or "", recorded.error_type
            )
        return recorded.result

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        if isinstance(error, ValidationError):
            # a payload that fails validation fails the same way every time
            return False
        if attempt >= self._retry_policy.maximum_attempts:
            return False
        return type(error).__name__ not in self._retry_policy.non_retryable_error_types

    async def _run(
        self, definition: ActivityDefinition[Any], payload: str
    ) -> tuple[ActivityOutcome, Optional[Exception]]:
        attempt = 0
        while True:
            attempt += 1
            try:
                activity_input = definition.decode(payload)
                result = await asyncio.wait_for(
                    definition(activity_input), timeout=self._timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self._should_retry(e, attempt):
                    logger.warning(
                        f"Activity {definition.name} failed after {attempt} attempt(s): {e!r}"
                    )
                    outcome = ActivityOutcome(
                        name=definition.name,
                        input=payload,
                        error=str(e) or type(e).__name__,
                        error_type=type(e).__name__,
                        attempts=attempt,
                    )
                    return outcome, e
                delay = await schedule_retry(attempt, self._retry_policy)
                logger.info(
                    f"Retried activity {definition.name} after {delay:.2f}s "
                    f"(attempt {attempt} failed: {e!r})"
                )
                continue
            outcome = ActivityOutcome(
                name=definition.name, input=payload, result=result, attempts=attempt
            )
            return outcome, None


@dataclass
class WorkflowRun:
    """Outcome of one workflow run on the local runtime."""

    result: Any
    history: WorkflowHistory
    context: WorkflowContext


WorkflowFunction = Callable[..., Awaitable[Any]]


class LocalWorkflowRuntime:
    """Run workflow coroutines against a local activity dispatcher."""

    def __init__(
        self,
        registry: ActivityRegistry,
        retry_policy: Optional[RetryPolicyConfig] = None,
        start_to_close_timeout: Optional[float] = None,
        sinks: Iterable[ObservationSink] = (),
        clock_source: Optional[Callable[[], datetime]] = None,
    ) -> None:
        registry.validate(REQUIRED_ACTIVITIES)
        self.registry = registry
        self.dispatcher = LocalActivityDispatcher(
            registry,
            retry_policy=retry_policy,
            start_to_close_timeout=start_to_close_timeout,
        )
        self._sinks = list(sinks)
        self._clock_source = clock_source

    def new_context(
        self, info: ExecutionInfo, history: Optional[WorkflowHistory] = None
    ) -> WorkflowContext:
        """Create a context; an existing ``history`` is replayed from the start."""
        history = history.replay() if history is not None else WorkflowHistory()
        return WorkflowContext(
            info,
            self.dispatcher,
            history=history,
            clock=HistoryClock(history, self._clock_source),
            sinks=self._sinks,
        )

    async def run(
        self,
        workflow: WorkflowFunction,
        info: ExecutionInfo,
        *args: Any,
        history: Optional[WorkflowHistory] = None,
    ) -> WorkflowRun:
        """Run ``workflow(ctx, *args)`` to completion."""
        ctx = self.new_context(info, history)
        logger.debug(f"Starting workflow {info.workflow_type} ({info.execution_id})")
        result = await workflow(ctx, *args)
        return WorkflowRun(result=result, history=ctx.history, context=ctx)
