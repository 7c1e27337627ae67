"""Read-side queries over recorded events and their attempts."""
from __future__ import annotations

from typing import List, Tuple
from uuid import UUID

from webhook_engine.domain.enums import EventStatus
from webhook_engine.domain.models import Delivery, WebhookEvent
from webhook_engine.repositories.deliveries import WebhookDeliveryRepository
from webhook_engine.repositories.events import WebhookEventRepository


class WebhookEventService:
    def __init__(self, events: WebhookEventRepository, deliveries: WebhookDeliveryRepository):
        self._events = events
        self._deliveries = deliveries

    async def get(self, store_id: UUID, event_pk: UUID) -> WebhookEvent:
        return await self._events.get(store_id, event_pk)

    async def list_events(
        self,
        store_id: UUID,
        *,
        status: EventStatus | None = None,
        subscription_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookEvent], int]:
        return await self._events.list_by_store(
            store_id,
            status=status,
            subscription_id=subscription_id,
            limit=limit,
            offset=offset,
        )

    async def list_deliveries(self, store_id: UUID, event_pk: UUID) -> List[Delivery]:
        """Attempts of one event, oldest first. Raises ``NotFoundError`` for foreign events."""
        event = await self._events.get(store_id, event_pk)
        return await self._deliveries.list_for_event(event.id)
