"""In-memory implementation of the audit service."""

from __future__ import annotations

import asyncio
from typing import Dict, List

from ..models import Process, ProcessEvent
from .base import AuditService, ProcessQuery, event_key, merge_process


class InMemoryAuditService(AuditService):
    """Store the audit trail in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._processes: Dict[str, Process] = {}
        self._events: List[ProcessEvent] = []
        self._event_ids: Dict[tuple, int] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def log_process(self, process: Process) -> str:
        async with self._lock:
            stored = self._processes.get(process.id)
            self._processes[process.id] = merge_process(
                stored, process.model_copy(update={"events": []})
            )
        return process.id

    async def log_process_event(self, event: ProcessEvent) -> int:
        key = event_key(event)
        async with self._lock:
            existing = self._event_ids.get(key)
            if existing is not None:
                return existing
            event_id = len(self._events) + 1
            self._events.append(event.model_copy(update={"id": event_id}))
            self._event_ids[key] = event_id
        return event_id

    async def get_process(self, process_id: str) -> Process | None:
        process = self._processes.get(process_id)
        if process is None:
            return None
        events = sorted(
            (e for e in self._events if e.process_id == process_id),
            key=lambda e: (e.timestamp, e.id),
        )
        return process.model_copy(update={"events": events})

    async def list_processes(self, query: ProcessQuery | None = None) -> list[Process]:
        query = query or ProcessQuery()
        return sorted(
            (p for p in self._processes.values() if query.matches(p)),
            key=lambda p: p.started_at,
        )
