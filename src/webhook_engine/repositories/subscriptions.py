"""Webhook subscription persistence."""
from __future__ import annotations

from typing import Any, Iterable, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_engine.core.exceptions import NotFoundError
from webhook_engine.domain.dto import SubscriptionCreate
from webhook_engine.domain.enums import EventStatus
from webhook_engine.domain.models import Subscription
from webhook_engine.repositories.base import BaseRepository

# Columns a partial update may touch.
_UPDATABLE_COLUMNS = (
    "name",
    "url",
    "description",
    "event_types",
    "is_active",
    "timeout_seconds",
    "max_retries",
    "retry_delay_seconds",
    "custom_headers",
    "metadata",
)


class WebhookSubscriptionRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> Subscription:
        return Subscription.model_validate(dict(record))

    async def create(self, store_id: UUID, data: SubscriptionCreate, *, secret: str) -> Subscription:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_subscriptions (
                store_id, name, url, description, event_types, secret, is_active,
                timeout_seconds, max_retries, retry_delay_seconds, custom_headers, metadata
            )
            VALUES ($1, $2, $3, $4, $5::text[], $6, $7, $8, $9, $10, $11, $12)
            RETURNING *
            """,
            store_id,
            data.name,
            data.url,
            data.description,
            data.event_types,
            secret,
            data.is_active,
            data.timeout_seconds,
            data.max_retries,
            data.retry_delay_seconds,
            data.custom_headers,
            data.metadata,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, store_id: UUID, subscription_id: UUID) -> Subscription:
        record = await self._fetchrow(
            """
            SELECT * FROM webhook_subscriptions
            WHERE store_id = $1 AND id = $2 AND deleted_at IS NULL
            """,
            store_id,
            subscription_id,
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")
        return self._to_model(record)

    async def get_by_id(self, subscription_id: UUID) -> Subscription | None:
        """Unscoped lookup used by the dispatcher; includes soft-deleted rows."""
        record = await self._fetchrow(
            "SELECT * FROM webhook_subscriptions WHERE id = $1", subscription_id
        )
        return self._to_model(record) if record else None

    async def list_by_store(
        self,
        store_id: UUID,
        *,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Subscription], int]:
        where = ["store_id = $1", "deleted_at IS NULL"]
        values: list[Any] = [store_id]
        if active is not None:
            values.append(active)
            where.append(f"is_active = ${len(values)}")
        idx = len(values) + 1
        records = await self._fetch(
            f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM webhook_subscriptions
            WHERE {" AND ".join(where)}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._split_total(records)
        if total is None:
            total = await self._fetchval(
                f"SELECT COUNT(*) FROM webhook_subscriptions WHERE {' AND '.join(where)}",
                *values,
            )
        return [self._to_model(r) for r in rows], int(total or 0)

    async def list_active_matching(self, store_id: UUID, event_type: str) -> List[Subscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE store_id = $1
              AND is_active
              AND deleted_at IS NULL
              AND $2 = ANY(event_types)
            ORDER BY created_at ASC
            """,
            store_id,
            event_type,
        )
        return [self._to_model(r) for r in records]

    async def update(self, store_id: UUID, subscription_id: UUID, changes: dict[str, Any]) -> Subscription:
        unknown = set(changes) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported subscription fields: {sorted(unknown)}")
        if not changes:
            return await self.get(store_id, subscription_id)
        assignments: list[str] = []
        values: list[Any] = [store_id, subscription_id]
        for column in _UPDATABLE_COLUMNS:
            if column in changes:
                values.append(changes[column])
                cast = "::text[]" if column == "event_types" else ""
                assignments.append(f"{column} = ${len(values)}{cast}")
        record = await self._fetchrow(
            f"""
            UPDATE webhook_subscriptions
            SET {", ".join(assignments)}, updated_at = now()
            WHERE store_id = $1 AND id = $2 AND deleted_at IS NULL
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")
        return self._to_model(record)

    async def set_active(self, store_id: UUID, subscription_id: UUID, active: bool) -> Subscription:
        return await self.update(store_id, subscription_id, {"is_active": active})

    async def set_secret(self, store_id: UUID, subscription_id: UUID, secret: str) -> Subscription:
        record = await self._fetchrow(
            """
            UPDATE webhook_subscriptions
            SET secret = $3, updated_at = now()
            WHERE store_id = $1 AND id = $2 AND deleted_at IS NULL
            RETURNING *
            """,
            store_id,
            subscription_id,
            secret,
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")
        return self._to_model(record)

    async def soft_delete(
        self,
        store_id: UUID,
        subscription_id: UUID,
        *,
        cancel_statuses: Iterable[EventStatus],
    ) -> Tuple[Subscription, int]:
        """Soft-delete a subscription and cancel its events in ``cancel_statuses``.

        Both updates commit in one transaction. Returns the deleted
        subscription and the number of cancelled events.
        """
        async with self._pool.acquire() as conn, conn.transaction():
            record = await conn.fetchrow(
                """
                UPDATE webhook_subscriptions
                SET deleted_at = now(), is_active = false, updated_at = now()
                WHERE store_id = $1 AND id = $2 AND deleted_at IS NULL
                RETURNING *
                """,
                store_id,
                subscription_id,
            )
            if record is None:
                raise NotFoundError("Webhook subscription not found")
            status = await conn.execute(
                """
                UPDATE webhook_events
                SET status = 'cancelled',
                    cancelled_at = now(),
                    next_retry_at = NULL,
                    processing_at = NULL,
                    processing_by = NULL,
                    updated_at = now()
                WHERE subscription_id = $1
                  AND status = ANY($2::text[])
                """,
                record["id"],
                sorted(s.value for s in cancel_statuses),
            )
        return self._to_model(record), self._affected(status)

    async def record_delivery_stats(self, subscription_id: UUID, *, success: bool) -> None:
        await self._execute(
            """
            UPDATE webhook_subscriptions
            SET total_deliveries = total_deliveries + 1,
                successful_deliveries = successful_deliveries + CASE WHEN $2::boolean THEN 1 ELSE 0 END,
                failed_deliveries = failed_deliveries + CASE WHEN $2::boolean THEN 0 ELSE 1 END,
                last_delivery_at = now(),
                last_success_at = CASE WHEN $2::boolean THEN now() ELSE last_success_at END,
                last_failure_at = CASE WHEN $2::boolean THEN last_failure_at ELSE now() END
            WHERE id = $1
            """,
            subscription_id,
            success,
        )

    async def count_active(self, store_id: UUID) -> int:
        value = await self._fetchval(
            """
            SELECT COUNT(*) FROM webhook_subscriptions
            WHERE store_id = $1 AND is_active AND deleted_at IS NULL
            """,
            store_id,
        )
        return int(value or 0)

    async def list_unhealthy(
        self, *, min_deliveries: int, failure_rate_percent: float
    ) -> List[Subscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE is_active
              AND deleted_at IS NULL
              AND total_deliveries >= $1
              AND failed_deliveries::float8 * 100 / NULLIF(total_deliveries, 0) > $2::float8
            ORDER BY store_id, id
            """,
            min_deliveries,
            failure_rate_percent,
        )
        return [self._to_model(r) for r in records]
