"""Delivery attempt records (one row per HTTP attempt)."""
from __future__ import annotations

from typing import Any, List
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_engine.core.exceptions import RepositoryError
from webhook_engine.domain.enums import DeliveryStatus
from webhook_engine.domain.models import Delivery
from webhook_engine.repositories.base import BaseRepository


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> Delivery:
        return Delivery.model_validate(dict(record))

    async def create_pending(
        self,
        *,
        delivery_id: UUID,
        event_pk: UUID,
        subscription_id: UUID,
        attempt_number: int,
        url: str,
        payload: Any,
        request_headers: dict[str, str],
        worker_id: str,
    ) -> Delivery:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (
                id, event_id, subscription_id, attempt_number, url,
                payload, request_headers, status, worker_id, sent_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, 'pending', $8, now())
            RETURNING *
            """,
            delivery_id,
            event_pk,
            subscription_id,
            attempt_number,
            url,
            payload,
            request_headers,
            worker_id,
        )
        assert record is not None
        return self._to_model(record)

    async def finalize(
        self,
        delivery_id: UUID,
        *,
        status: DeliveryStatus,
        duration_ms: int,
        response_status: int | None = None,
        response_body: str | None = None,
        response_headers: dict[str, str] | None = None,
        error_message: str | None = None,
    ) -> Delivery:
        """Record the outcome; only a ``pending`` row can be finalized, once."""
        if status is DeliveryStatus.PENDING:
            raise ValueError("A delivery cannot be finalized as pending")
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = $2,
                response_status = $3,
                response_body = $4,
                response_headers = $5,
                error_message = $6,
                duration_ms = $7,
                completed_at = now()
            WHERE id = $1 AND status = 'pending'
            RETURNING *
            """,
            delivery_id,
            status.value,
            response_status,
            response_body,
            response_headers,
            error_message,
            duration_ms,
        )
        if record is None:
            raise RepositoryError(f"Delivery {delivery_id} is missing or already finalized")
        return self._to_model(record)

    async def list_for_event(self, event_pk: UUID) -> List[Delivery]:
        records = await self._fetch(
            """
            SELECT * FROM webhook_deliveries
            WHERE event_id = $1
            ORDER BY attempt_number ASC, sent_at ASC
            """,
            event_pk,
        )
        return [self._to_model(r) for r in records]

    async def count_for_event(self, event_pk: UUID) -> int:
        value = await self._fetchval(
            "SELECT COUNT(*) FROM webhook_deliveries WHERE event_id = $1", event_pk
        )
        return int(value or 0)
