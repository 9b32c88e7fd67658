"""SQL implementation of the audit service (SQLite or PostgreSQL)."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, col, select

from ..models import Process, ProcessEvent, Status
from .base import AuditService, ProcessQuery, merge_process
from .tables import ProcessEventRow, ProcessRow


def normalize_database_url(database_url: str) -> str:
    """Return an async driver URL for ``database_url``."""

    if database_url.startswith(("sqlite+", "postgresql+")):
        return database_url
    if database_url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + database_url[len("sqlite://") :]
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix) :]
    raise ValueError(f"Unsupported database backend: {database_url}")


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    # normalized to UTC so SQLite, which drops the offset, compares the same
    # way as PostgreSQL; naive values are taken as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _process_from_row(row: ProcessRow) -> Process:
    return Process(
        id=row.id,
        parent_id=row.parent_id,
        org_id=row.org_id,
        type=row.type,
        log=row.log,
        resource_id=row.resource_id,
        status=Status(row.status),
        started_at=_from_db(row.started_at),
        finished_at=_from_db(row.finished_at),
    )


def _event_from_row(row: ProcessEventRow) -> ProcessEvent:
    return ProcessEvent(
        id=row.id,
        process_id=row.process_id,
        type=row.type,
        log=row.log,
        status=Status(row.status),
        timestamp=_from_db(row.timestamp),
        sequence=row.sequence,
    )


class SQLAuditService(AuditService):
    """Persist the audit trail using SQLModel on an async SQLAlchemy engine."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = normalize_database_url(database_url)
        connect_args = (
            {"check_same_thread": False}
            if self.database_url.startswith("sqlite")
            else {}
        )
        self.engine = create_async_engine(
            self.database_url, echo=echo, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Schema management
    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    async def _ensure_schema(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if not self._initialized:
                await self.init_db()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self._ensure_schema()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    # Helper methods
    async def _upsert_process(self, process: Process) -> None:
        async with self.session() as session:
            row = await session.get(ProcessRow, process.id)
            stored = _process_from_row(row) if row is not None else None
            merged = merge_process(stored, process)
            if merged is stored:
                return
            values = dict(
                parent_id=merged.parent_id,
                org_id=merged.org_id,
                type=merged.type,
                log=merged.log,
                resource_id=merged.resource_id,
                status=merged.status.value,
                started_at=_to_db(merged.started_at),
                finished_at=_to_db(merged.finished_at),
            )
            if row is None:
                session.add(ProcessRow(id=merged.id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            await session.commit()

    async def _insert_event(self, event: ProcessEvent) -> int:
        timestamp = _to_db(event.timestamp)
        async with self.session() as session:
            result = await session.execute(
                select(ProcessEventRow).where(
                    ProcessEventRow.process_id == event.process_id,
                    ProcessEventRow.sequence == event.sequence,
                    ProcessEventRow.type == event.type,
                    ProcessEventRow.status == event.status.value,
                    ProcessEventRow.timestamp == timestamp,
                )
            )
            existing = result.scalars().first()
            if existing is not None:
                return existing.id
            row = ProcessEventRow(
                process_id=event.process_id,
                sequence=event.sequence,
                type=event.type,
                log=event.log,
                status=event.status.value,
                timestamp=timestamp,
            )
            session.add(row)
            await session.commit()
            return row.id

    # ------------------------------------------------------------------
    # Service API
    async def log_process(self, process: Process) -> str:
        try:
            await self._upsert_process(process)
        except IntegrityError:
            # a concurrent writer inserted the same id first
            await self._upsert_process(process)
        return process.id

    async def log_process_event(self, event: ProcessEvent) -> int:
        try:
            return await self._insert_event(event)
        except IntegrityError:
            return await self._insert_event(event)

    async def get_process(self, process_id: str) -> Process | None:
        async with self.session() as session:
            row = await session.get(ProcessRow, process_id)
            if row is None:
                return None
            result = await session.execute(
                select(ProcessEventRow)
                .where(ProcessEventRow.process_id == process_id)
                .order_by(col(ProcessEventRow.timestamp), col(ProcessEventRow.id))
            )
            event_rows = result.scalars().all()
        process = _process_from_row(row)
        process.events = [_event_from_row(r) for r in event_rows]
        return process

    async def list_processes(self, query: ProcessQuery | None = None) -> list[Process]:
        query = query or ProcessQuery()
        statement = select(ProcessRow)
        if query.org_id is not None:
            statement = statement.where(ProcessRow.org_id == query.org_id)
        if query.type is not None:
            statement = statement.where(ProcessRow.type == query.type)
        if query.status is not None:
            statement = statement.where(ProcessRow.status == query.status.value)
        if query.resource_id is not None:
            statement = statement.where(ProcessRow.resource_id == query.resource_id)
        if query.parent_id is not None:
            statement = statement.where(ProcessRow.parent_id == query.parent_id)
        statement = statement.order_by(col(ProcessRow.started_at))
        async with self.session() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()
        return [_process_from_row(r) for r in rows]
