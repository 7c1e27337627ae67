"""Event recorder: fans a domain occurrence out into per-subscription events."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List
from uuid import UUID, uuid4

from webhook_engine.domain.models import Subscription, WebhookEvent
from webhook_engine.repositories.events import WebhookEventRepository
from webhook_engine.repositories.subscriptions import WebhookSubscriptionRepository
from webhook_engine.services.audit import AuditLog

TEST_EVENT_TYPE = "webhook.test"


def new_event_id() -> str:
    """Idempotency key sent to integrators; fresh per recorded event."""
    return f"evt_{uuid4().hex}"


class EventRecorder:
    """Creates pending events only; dispatching is the dispatcher's job."""

    def __init__(
        self,
        subscriptions: WebhookSubscriptionRepository,
        events: WebhookEventRepository,
        audit: AuditLog,
    ):
        self._subscriptions = subscriptions
        self._events = events
        self._audit = audit

    async def record(self, store_id: UUID, event_type: str, payload: Any) -> List[WebhookEvent]:
        candidates = await self._subscriptions.list_active_matching(store_id, event_type)
        matching = [
            s for s in candidates if s.accepts_deliveries and s.is_subscribed_to(event_type)
        ]
        if not matching:
            await self._audit.debug(
                f"No active subscriptions found for event: {event_type}",
                store_id=store_id,
                context={"event_type": event_type},
            )
            return []

        events = [
            await self.record_for_subscription(subscription, event_type, payload)
            for subscription in matching
        ]
        await self._audit.info(
            f"Event recorded for {len(events)} subscription(s): {event_type}",
            store_id=store_id,
            context={
                "event_type": event_type,
                "subscription_count": len(events),
                "event_ids": [e.event_id for e in events],
            },
        )
        return events

    async def record_for_subscription(
        self, subscription: Subscription, event_type: str, payload: Any
    ) -> WebhookEvent:
        event = await self._events.create(
            subscription,
            event_id=new_event_id(),
            event_type=event_type,
            payload=payload,
        )
        await self._audit.debug(
            f"Webhook event created: {event_type}",
            store_id=subscription.store_id,
            subscription_id=subscription.id,
            event_id=event.id,
            context={"event_id": event.event_id, "max_retries": event.max_retries},
        )
        return event

    async def send_test_event(self, store_id: UUID, subscription_id: UUID) -> WebhookEvent:
        """Queue a ``webhook.test`` event for one subscription, subscribed or not."""
        subscription = await self._subscriptions.get(store_id, subscription_id)
        payload = {
            "event": TEST_EVENT_TYPE,
            "subscription_id": str(subscription.id),
            "subscription_name": subscription.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "This is a test webhook event",
        }
        return await self.record_for_subscription(subscription, TEST_EVENT_TYPE, payload)
