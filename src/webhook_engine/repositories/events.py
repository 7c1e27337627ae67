"""Webhook event persistence, including the lease-based claim."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_engine.core.exceptions import NotFoundError
from webhook_engine.domain.enums import EventStatus
from webhook_engine.domain.models import EventResolution, Subscription, WebhookEvent
from webhook_engine.repositories.base import BaseRepository


class WebhookEventRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> WebhookEvent:
        return WebhookEvent.model_validate(dict(record))

    async def create(
        self,
        subscription: Subscription,
        *,
        event_id: str,
        event_type: str,
        payload: Any,
    ) -> WebhookEvent:
        # max_retries is copied here and never rewritten from the subscription.
        record = await self._fetchrow(
            """
            INSERT INTO webhook_events (
                event_id, subscription_id, store_id, event_type, payload,
                status, retry_count, max_retries, next_retry_at
            )
            VALUES ($1, $2, $3, $4, $5, 'pending', 0, $6, now())
            RETURNING *
            """,
            event_id,
            subscription.id,
            subscription.store_id,
            event_type,
            payload,
            subscription.max_retries,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, store_id: UUID, event_pk: UUID) -> WebhookEvent:
        record = await self._fetchrow(
            "SELECT * FROM webhook_events WHERE store_id = $1 AND id = $2",
            store_id,
            event_pk,
        )
        if record is None:
            raise NotFoundError("Webhook event not found")
        return self._to_model(record)

    async def list_by_store(
        self,
        store_id: UUID,
        *,
        status: EventStatus | None = None,
        subscription_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookEvent], int]:
        where = ["store_id = $1"]
        values: list[Any] = [store_id]
        if status is not None:
            values.append(status.value)
            where.append(f"status = ${len(values)}")
        if subscription_id is not None:
            values.append(subscription_id)
            where.append(f"subscription_id = ${len(values)}")
        where_sql = " AND ".join(where)
        idx = len(values) + 1
        records = await self._fetch(
            f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM webhook_events
            WHERE {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._split_total(records)
        if total is None:
            total = await self._fetchval(f"SELECT COUNT(*) FROM webhook_events WHERE {where_sql}", *values)
        return [self._to_model(r) for r in rows], int(total or 0)

    async def claim_due(
        self,
        *,
        worker_id: str,
        limit: int,
        lease_timeout_seconds: float,
    ) -> List[WebhookEvent]:
        """Lease due events to ``worker_id`` in one conditional UPDATE.

        Eligible: ``pending`` events whose ``next_retry_at`` has passed, and
        ``processing`` events whose lease is older than the lease timeout.
        ``FOR UPDATE SKIP LOCKED`` keeps concurrent claimers from ever
        receiving the same row. Events of inactive or deleted subscriptions
        are left where they are.
        """
        records = await self._fetch(
            """
            WITH due AS (
                SELECT e.id
                FROM webhook_events e
                JOIN webhook_subscriptions s ON s.id = e.subscription_id
                WHERE s.is_active
                  AND s.deleted_at IS NULL
                  AND (
                        (e.status = 'pending' AND e.next_retry_at <= now())
                     OR (e.status = 'processing'
                         AND e.processing_at < now() - make_interval(secs => $2::float8))
                  )
                ORDER BY COALESCE(e.next_retry_at, e.processing_at) ASC, e.created_at ASC
                LIMIT $3
                FOR UPDATE OF e SKIP LOCKED
            )
            UPDATE webhook_events e
            SET status = 'processing',
                processing_at = now(),
                processing_by = $1,
                next_retry_at = NULL,
                updated_at = now()
            FROM due
            WHERE e.id = due.id
            RETURNING e.*
            """,
            worker_id,
            lease_timeout_seconds,
            limit,
        )
        return [self._to_model(r) for r in records]

    async def apply_resolution(
        self, event_pk: UUID, *, worker_id: str, resolution: EventResolution
    ) -> WebhookEvent | None:
        """Write an attempt's outcome if ``worker_id`` still holds the lease.

        Returns ``None`` when the lease was lost (cancelled, or re-claimed by
        another worker after expiry); the newer state is left untouched.
        """
        record = await self._fetchrow(
            """
            UPDATE webhook_events
            SET status = $3,
                retry_count = $4,
                next_retry_at = $5,
                last_error = $6,
                error_history = $7,
                delivered_at = $8,
                processing_at = NULL,
                processing_by = NULL,
                updated_at = now()
            WHERE id = $1
              AND status = 'processing'
              AND processing_by = $2
            RETURNING *
            """,
            event_pk,
            worker_id,
            resolution.status.value,
            resolution.retry_count,
            resolution.next_retry_at,
            resolution.last_error,
            [entry.model_dump(mode="json") for entry in resolution.error_history],
            resolution.delivered_at,
        )
        return self._to_model(record) if record else None

    async def release_lease(self, event_pk: UUID, *, worker_id: str) -> bool:
        """Put a claimed event back in the pending pool without an attempt."""
        status = await self._execute(
            """
            UPDATE webhook_events
            SET status = 'pending',
                next_retry_at = now(),
                processing_at = NULL,
                processing_by = NULL,
                updated_at = now()
            WHERE id = $1 AND status = 'processing' AND processing_by = $2
            """,
            event_pk,
            worker_id,
        )
        return self._affected(status) == 1

    async def refresh_lease(self, event_pk: UUID, *, worker_id: str) -> bool:
        """Restart the lease clock; ``False`` when ``worker_id`` no longer holds it."""
        status = await self._execute(
            """
            UPDATE webhook_events
            SET processing_at = now(), updated_at = now()
            WHERE id = $1 AND status = 'processing' AND processing_by = $2
            """,
            event_pk,
            worker_id,
        )
        return self._affected(status) == 1

    async def cancel(
        self, store_id: UUID, event_pk: UUID, *, statuses: Iterable[EventStatus]
    ) -> WebhookEvent | None:
        """Cancel an event currently in one of ``statuses``; ``None`` otherwise."""
        record = await self._fetchrow(
            """
            UPDATE webhook_events
            SET status = 'cancelled',
                cancelled_at = now(),
                next_retry_at = NULL,
                processing_at = NULL,
                processing_by = NULL,
                updated_at = now()
            WHERE store_id = $1
              AND id = $2
              AND status = ANY($3::text[])
            RETURNING *
            """,
            store_id,
            event_pk,
            sorted(s.value for s in statuses),
        )
        return self._to_model(record) if record else None

    async def reset_retries(self, store_id: UUID, event_pk: UUID) -> WebhookEvent | None:
        """Move a ``failed`` event back to ``pending``; ``None`` otherwise."""
        record = await self._fetchrow(
            """
            UPDATE webhook_events
            SET status = 'pending',
                retry_count = 0,
                error_history = '[]'::jsonb,
                last_error = NULL,
                next_retry_at = now(),
                processing_at = NULL,
                processing_by = NULL,
                updated_at = now()
            WHERE store_id = $1
              AND id = $2
              AND status = 'failed'
            RETURNING *
            """,
            store_id,
            event_pk,
        )
        return self._to_model(record) if record else None

    async def count_by_status(self, store_id: UUID, *, created_since: datetime) -> dict[str, int]:
        records = await self._fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM webhook_events
            WHERE store_id = $1 AND created_at >= $2
            GROUP BY status
            """,
            store_id,
            created_since,
        )
        return {r["status"]: int(r["total"]) for r in records}

    async def count_pending(self, store_id: UUID) -> int:
        value = await self._fetchval(
            "SELECT COUNT(*) FROM webhook_events WHERE store_id = $1 AND status = 'pending'",
            store_id,
        )
        return int(value or 0)
