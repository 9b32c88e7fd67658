"""Activity registration for proctrail workers."""

from __future__ import annotations

from ..constants import REQUIRED_ACTIVITIES
from ..service.base import AuditService
from .process import ProcessLogActivity, register_process_activities
from .registry import ActivityDefinition, ActivityNotRegisteredError, ActivityRegistry


def build_activity_registry(service: AuditService) -> ActivityRegistry:
    """Return a registry with the logging activities bound to ``service``.

    The registry is validated before it is returned, so a worker fails at
    start-up rather than on the first dispatch.
    """

    registry = ActivityRegistry()
    register_process_activities(registry, service)
    registry.validate(REQUIRED_ACTIVITIES)
    return registry


__all__ = [
    "ActivityDefinition",
    "ActivityNotRegisteredError",
    "ActivityRegistry",
    "ProcessLogActivity",
    "build_activity_registry",
    "register_process_activities",
]
