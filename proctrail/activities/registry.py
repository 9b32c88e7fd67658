"""Typed registry mapping activity names to handlers and input models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, List, Type, TypeVar

from pydantic import BaseModel

InputT = TypeVar("InputT", bound=BaseModel)


class ActivityNotRegisteredError(LookupError):
    """Raised when an activity name has no registered handler."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = sorted(names)
        super().__init__(f"activities not registered: {', '.join(self.names)}")


@dataclass(frozen=True)
class ActivityDefinition(Generic[InputT]):
    """One registered activity."""

    name: str
    handler: Callable[[InputT], Awaitable[Any]]
    input_type: Type[InputT]

    def decode(self, payload: str) -> InputT:
        """Re-validate a serialized input into this activity's input type."""
        return self.input_type.model_validate_json(payload)

    async def __call__(self, activity_input: InputT) -> Any:
        return await self.handler(activity_input)


class ActivityRegistry:
    """Registry of activities a worker can execute."""

    def __init__(self) -> None:
        self._definitions: Dict[str, ActivityDefinition[Any]] = {}

    def register(
        self,
        name: str,
        handler: Callable[[InputT], Awaitable[Any]],
        input_type: Type[InputT],
    ) -> ActivityDefinition[InputT]:
        if not name:
            raise ValueError("activity name must be a non-empty string")
        if name in self._definitions:
            raise ValueError(f"activity already registered: {name}")
        definition = ActivityDefinition(name=name, handler=handler, input_type=input_type)
        self._definitions[name] = definition
        return definition

    def get(self, name: str) -> ActivityDefinition[Any]:
        try:
            return self._definitions[name]
        except KeyError:
            raise ActivityNotRegisteredError([name]) from None

    def validate(self, required: Iterable[str]) -> None:
        """Ensure every name in ``required`` is registered."""
        missing = [name for name in required if name not in self._definitions]
        if missing:
            raise ActivityNotRegisteredError(missing)

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
