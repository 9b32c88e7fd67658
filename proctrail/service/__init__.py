"""Audit service backends for the process audit trail."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ProctrailConfig, load_config
from .base import AuditService, ProcessQuery, merge_process
from .inmemory import InMemoryAuditService
from .sql import SQLAuditService, normalize_database_url

_service_instance: AuditService | None = None


def get_audit_service(
    database_url: Optional[str] = None, config: Optional[ProctrailConfig] = None
) -> AuditService:
    """Factory function to obtain an audit service.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``PROCTRAIL_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory service is returned.
    """

    global _service_instance
    if _service_instance is not None and database_url is None and config is None:
        return _service_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("PROCTRAIL_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _service_instance = InMemoryAuditService()
    else:
        _service_instance = SQLAuditService(database_url)
    return _service_instance


def set_audit_service(service: AuditService | None) -> None:
    """Replace the cached service returned by :func:`get_audit_service`."""

    global _service_instance
    _service_instance = service


__all__ = [
    "AuditService",
    "InMemoryAuditService",
    "ProcessQuery",
    "SQLAuditService",
    "get_audit_service",
    "merge_process",
    "normalize_database_url",
    "set_audit_service",
]
