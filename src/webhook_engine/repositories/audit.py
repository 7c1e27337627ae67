"""Append-only audit log storage."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Sequence, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_engine.domain.enums import AuditLevel
from webhook_engine.domain.models import AuditLogEntry
from webhook_engine.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> AuditLogEntry:
        return AuditLogEntry.model_validate(dict(record))

    async def append(
        self,
        *,
        level: AuditLevel,
        message: str,
        context: dict[str, Any],
        store_id: UUID | None = None,
        subscription_id: UUID | None = None,
        event_id: UUID | None = None,
        delivery_id: UUID | None = None,
    ) -> AuditLogEntry:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_audit_logs (
                store_id, level, message, context, subscription_id, event_id, delivery_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
            """,
            store_id,
            level.value,
            message,
            context,
            subscription_id,
            event_id,
            delivery_id,
        )
        assert record is not None
        return self._to_model(record)

    async def list_entries(
        self,
        store_id: UUID,
        *,
        levels: Sequence[AuditLevel] | None = None,
        subscription_id: UUID | None = None,
        event_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLogEntry], int]:
        where = ["store_id = $1"]
        values: list[Any] = [store_id]
        if levels:
            values.append([level.value for level in levels])
            where.append(f"level = ANY(${len(values)}::text[])")
        if subscription_id is not None:
            values.append(subscription_id)
            where.append(f"subscription_id = ${len(values)}")
        if event_id is not None:
            values.append(event_id)
            where.append(f"event_id = ${len(values)}")
        where_sql = " AND ".join(where)
        idx = len(values) + 1
        records = await self._fetch(
            f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM webhook_audit_logs
            WHERE {where_sql}
            ORDER BY id DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._split_total(records)
        if total is None:
            total = await self._fetchval(
                f"SELECT COUNT(*) FROM webhook_audit_logs WHERE {where_sql}", *values
            )
        return [self._to_model(r) for r in rows], int(total or 0)

    async def purge(self, *, levels: Sequence[AuditLevel], created_before: datetime) -> int:
        status = await self._execute(
            """
            DELETE FROM webhook_audit_logs
            WHERE level = ANY($1::text[]) AND created_at < $2
            """,
            [level.value for level in levels],
            created_before,
        )
        return self._affected(status)
