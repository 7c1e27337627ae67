"""Audit log: persisted, leveled records of engine activity."""
from __future__ import annotations

from typing import Any, List, Tuple
from uuid import UUID

import structlog

from webhook_engine.domain.enums import AuditLevel
from webhook_engine.domain.models import AuditLogEntry
from webhook_engine.repositories.audit import AuditLogRepository

logger = structlog.get_logger("webhook_engine.audit")


class AuditLog:
    """Writes every entry to the audit table and mirrors it to structlog."""

    def __init__(self, repository: AuditLogRepository):
        self._repository = repository

    async def log(
        self,
        level: AuditLevel,
        message: str,
        *,
        store_id: UUID | None = None,
        context: dict[str, Any] | None = None,
        subscription_id: UUID | None = None,
        event_id: UUID | None = None,
        delivery_id: UUID | None = None,
    ) -> AuditLogEntry:
        context = context or {}
        getattr(logger, level.value)(
            message,
            store_id=str(store_id) if store_id else None,
            subscription_id=str(subscription_id) if subscription_id else None,
            event_pk=str(event_id) if event_id else None,
            delivery_id=str(delivery_id) if delivery_id else None,
            context=context,
        )
        return await self._repository.append(
            level=level,
            message=message,
            context=context,
            store_id=store_id,
            subscription_id=subscription_id,
            event_id=event_id,
            delivery_id=delivery_id,
        )

    async def debug(self, message: str, **kwargs: Any) -> AuditLogEntry:
        return await self.log(AuditLevel.DEBUG, message, **kwargs)

    async def info(self, message: str, **kwargs: Any) -> AuditLogEntry:
        return await self.log(AuditLevel.INFO, message, **kwargs)

    async def warning(self, message: str, **kwargs: Any) -> AuditLogEntry:
        return await self.log(AuditLevel.WARNING, message, **kwargs)

    async def error(self, message: str, **kwargs: Any) -> AuditLogEntry:
        return await self.log(AuditLevel.ERROR, message, **kwargs)

    async def critical(self, message: str, **kwargs: Any) -> AuditLogEntry:
        return await self.log(AuditLevel.CRITICAL, message, **kwargs)

    async def list_entries(
        self,
        store_id: UUID,
        *,
        min_level: AuditLevel | None = None,
        subscription_id: UUID | None = None,
        event_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLogEntry], int]:
        return await self._repository.list_entries(
            store_id,
            levels=min_level.at_or_above() if min_level else None,
            subscription_id=subscription_id,
            event_id=event_id,
            limit=limit,
            offset=offset,
        )
