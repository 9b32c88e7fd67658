from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _timestamp_column(nullable: bool = False) -> Column:
    return Column(DateTime(timezone=True), nullable=nullable)


class ProcessRow(SQLModel, table=True):
    """Stored audit record of a workflow execution."""

    __tablename__ = "processes"

    id: str = Field(primary_key=True)
    parent_id: str = Field(default="", index=True)
    org_id: int = Field(index=True)
    type: str = Field(index=True)
    log: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    resource_id: str = Field(default="", index=True)
    status: str = Field(index=True)
    started_at: datetime = Field(sa_column=_timestamp_column())
    finished_at: Optional[datetime] = Field(
        default=None, sa_column=_timestamp_column(nullable=True)
    )


class ProcessEventRow(SQLModel, table=True):
    """Stored audit record of one sub-step."""

    __tablename__ = "process_events"
    __table_args__ = (
        UniqueConstraint(
            "process_id",
            "sequence",
            "type",
            "status",
            "timestamp",
            name="uq_process_event",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    process_id: str = Field(index=True)
    sequence: int = Field(default=0)
    type: str
    log: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    status: str
    timestamp: datetime = Field(sa_column=_timestamp_column())
