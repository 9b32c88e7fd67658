"""Base activity dispatch interface."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..context import WorkflowContext


class ActivityError(Exception):
    """Raised to the workflow when an activity failed after all retries."""

    def __init__(
        self,
        name: str,
        attempts: int,
        message: str,
        error_type: Optional[str] = None,
    ) -> None:
        self.name = name
        self.attempts = attempts
        self.message = message
        self.error_type = error_type
        super().__init__(
            f"activity {name} failed after {attempts} attempt(s): {message}"
        )


class NondeterminismError(RuntimeError):
    """Raised when a replayed execution diverges from its recorded history."""


class ActivityDispatcher(metaclass=abc.ABCMeta):
    """Abstract dispatcher executing activities on behalf of workflow code."""

    @abc.abstractmethod
    async def execute_activity(
        self, ctx: "WorkflowContext", name: str, activity_input: BaseModel
    ) -> Any:
        """Run the activity registered as ``name`` and return its result.

        Raises:
            ActivityError: If the activity failed and retries are exhausted.
            NondeterminismError: If replay does not match recorded history.
        """
        raise NotImplementedError
