"""Audit service contract shared by all storage backends."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from pydantic import BaseModel

from ..models import Process, ProcessEvent, Status

logger = logging.getLogger(__name__)


class ProcessQuery(BaseModel):
    """Filters for listing processes; unset fields match everything."""

    org_id: Optional[int] = None
    type: Optional[str] = None
    status: Optional[Status] = None
    resource_id: Optional[str] = None
    parent_id: Optional[str] = None

    def matches(self, process: Process) -> bool:
        for field in ("org_id", "type", "status", "resource_id", "parent_id"):
            expected = getattr(self, field)
            if expected is not None and getattr(process, field) != expected:
                return False
        return True


class AuditService(Protocol):
    """Protocol for audit trail storage backends.

    Both write operations are idempotent so that an activity redelivered after
    a crash or timeout can be applied again safely.
    """

    async def log_process(self, process: Process) -> str:
        """Insert or update the process keyed by its id."""

    async def log_process_event(self, event: ProcessEvent) -> int:
        """Append an event unless an identical one is already stored."""

    async def get_process(self, process_id: str) -> Process | None:
        """Return the process with its events, or ``None``."""

    async def list_processes(self, query: ProcessQuery | None = None) -> list[Process]:
        """Return processes matching ``query`` ordered by start time."""


def merge_process(stored: Process | None, incoming: Process) -> Process:
    """Resolve an upsert of ``incoming`` over ``stored``.

    A running record is replaced by the newer write. A terminal record is
    never modified again.
    """

    if stored is None or stored.status is Status.RUNNING:
        return incoming
    if incoming.status is not stored.status or incoming.log != stored.log:
        logger.info(
            f"Ignoring {incoming.status.value} write for process {stored.id}: "
            f"already {stored.status.value}"
        )
    return stored


def event_key(event: ProcessEvent) -> tuple:
    """Natural key identifying redelivered copies of the same event.

    ``sequence`` separates distinct dispatches of the same step that share a
    status and instant.
    """
    return (
        event.process_id,
        event.sequence,
        event.type,
        event.status,
        event.timestamp,
    )
