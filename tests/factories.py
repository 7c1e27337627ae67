"""Model builders shared by unit tests."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from webhook_engine.domain.enums import DeliveryStatus, EventStatus
from webhook_engine.domain.models import Delivery, Subscription, WebhookEvent

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
SECRET = "whsec_test-secret-value-1234"


def make_subscription(**overrides: Any) -> Subscription:
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "store_id": uuid.uuid4(),
        "name": "ERP sync",
        "url": "https://erp.example.com/hooks",
        "event_types": ["order.created", "order.paid"],
        "secret": SECRET,
        "is_active": True,
        "timeout_seconds": 30,
        "max_retries": 3,
        "retry_delay_seconds": 60,
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Subscription.model_validate(data)


def make_event(subscription: Subscription | None = None, **overrides: Any) -> WebhookEvent:
    subscription = subscription or make_subscription()
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "event_id": f"evt_{uuid.uuid4().hex}",
        "subscription_id": subscription.id,
        "store_id": subscription.store_id,
        "event_type": "order.created",
        "payload": {"order_id": 42, "total": "19.99"},
        "status": EventStatus.PROCESSING,
        "retry_count": 0,
        "max_retries": subscription.max_retries,
        "processing_at": NOW,
        "processing_by": "worker-a",
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return WebhookEvent.model_validate(data)


def make_delivery(event: WebhookEvent, **overrides: Any) -> Delivery:
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "event_id": event.id,
        "subscription_id": event.subscription_id,
        "attempt_number": event.attempt_number,
        "url": "https://erp.example.com/hooks",
        "payload": event.payload,
        "status": DeliveryStatus.SUCCESS,
        "response_status": 200,
        "sent_at": NOW,
        "completed_at": NOW,
        "duration_ms": 12,
    }
    data.update(overrides)
    return Delivery.model_validate(data)
