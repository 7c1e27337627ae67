from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from webhook_engine.domain.enums import AuditLevel
from webhook_engine.domain.models import AuditLogEntry
from webhook_engine.services.audit import AuditLog

from tests.factories import NOW


@pytest.fixture
def audit_repository():
    """In-memory stand-in for AuditLogRepository; keeps appended entries."""
    repo = MagicMock()
    repo.entries = []

    async def append(*, level, message, context, **links):
        entry = AuditLogEntry(
            id=len(repo.entries) + 1,
            level=level,
            message=message,
            context=context,
            created_at=NOW,
            **links,
        )
        repo.entries.append(entry)
        return entry

    repo.append = AsyncMock(side_effect=append)
    repo.list_entries = AsyncMock(return_value=([], 0))
    repo.purge = AsyncMock(return_value=0)
    return repo


@pytest.fixture
def audit(audit_repository) -> AuditLog:
    return AuditLog(audit_repository)


@pytest.fixture
def audit_levels(audit_repository):
    def levels() -> list[AuditLevel]:
        return [entry.level for entry in audit_repository.entries]

    return levels


@pytest.fixture
def store_id() -> uuid.UUID:
    return uuid.uuid4()
