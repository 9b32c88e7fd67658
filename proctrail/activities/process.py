"""Logging activities: the only code that calls the audit service."""

from __future__ import annotations

import logging

from ..constants import PROCESS_EVENT_ACTIVITY_NAME, PROCESS_LOG_ACTIVITY_NAME
from ..models import ProcessEventActivityInput, ProcessLogActivityInput
from ..service.base import AuditService
from .registry import ActivityRegistry

logger = logging.getLogger(__name__)


class ProcessLogActivity:
    """Translate activity inputs into audit records and store them.

    Service errors are returned to the dispatcher unmodified so that its retry
    policy can act on them. The activity keeps no state between invocations.
    """

    def __init__(self, service: AuditService) -> None:
        self._service = service

    async def execute_process_log(self, activity_input: ProcessLogActivityInput) -> str:
        process_id = await self._service.log_process(activity_input.to_process())
        logger.debug(
            f"Logged process {process_id} with status {activity_input.status.value}"
        )
        return process_id

    async def execute_process_event(
        self, activity_input: ProcessEventActivityInput
    ) -> int:
        event_id = await self._service.log_process_event(activity_input.to_event())
        logger.debug(
            f"Logged event {activity_input.type} for process {activity_input.process_id} "
            f"with status {activity_input.status.value}"
        )
        return event_id


def register_process_activities(
    registry: ActivityRegistry, service: AuditService
) -> ProcessLogActivity:
    """Register both logging activities of ``service`` on ``registry``."""

    activity = ProcessLogActivity(service)
    registry.register(
        PROCESS_LOG_ACTIVITY_NAME, activity.execute_process_log, ProcessLogActivityInput
    )
    registry.register(
        PROCESS_EVENT_ACTIVITY_NAME,
        activity.execute_process_event,
        ProcessEventActivityInput,
    )
    return activity
