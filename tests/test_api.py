"""HTTP API: routing, tenant header, status codes and error mapping."""
from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import web

from webhook_common.aiohttp_app import add_healthcheck
from webhook_engine.api.router import setup_routes
from webhook_engine.core.exceptions import (
    InvalidStatusTransitionError,
    NotFoundError,
    SubscriptionValidationError,
)
from webhook_engine.domain.enums import AuditLevel, EventStatus, StatsPeriod
from webhook_engine.domain.models import CreatedSubscription, WebhookStatistics
from webhook_engine.settings import settings

from tests.factories import SECRET, make_delivery, make_event, make_subscription


@pytest.fixture
def services():
    registry = MagicMock()
    for name in (
        "create", "get", "list_subscriptions", "update", "delete",
        "activate", "deactivate", "rotate_secret",
    ):
        setattr(registry, name, AsyncMock())
    recorder = MagicMock()
    recorder.record = AsyncMock(return_value=[])
    recorder.send_test_event = AsyncMock()
    event_service = MagicMock()
    event_service.get = AsyncMock()
    event_service.list_events = AsyncMock(return_value=([], 0))
    event_service.list_deliveries = AsyncMock(return_value=[])
    scheduler = MagicMock()
    scheduler.cancel = AsyncMock()
    scheduler.reset_retries = AsyncMock()
    stats = MagicMock()
    stats.statistics = AsyncMock()
    audit = MagicMock()
    audit.list_entries = AsyncMock(return_value=([], 0))
    return {
        "registry": registry,
        "recorder": recorder,
        "events": event_service,
        "scheduler": scheduler,
        "stats": stats,
        "audit": audit,
    }


@pytest.fixture
async def client(aiohttp_client, services):
    app = web.Application()
    add_healthcheck(app, settings)
    setup_routes(app)
    patches = [
        patch("webhook_engine.api.routes.subscriptions.get_subscription_registry",
              AsyncMock(return_value=services["registry"])),
        patch("webhook_engine.api.routes.subscriptions.get_event_recorder",
              AsyncMock(return_value=services["recorder"])),
        patch("webhook_engine.api.routes.events.get_event_recorder",
              AsyncMock(return_value=services["recorder"])),
        patch("webhook_engine.api.routes.events.get_event_service",
              AsyncMock(return_value=services["events"])),
        patch("webhook_engine.api.routes.events.get_retry_scheduler",
              AsyncMock(return_value=services["scheduler"])),
        patch("webhook_engine.api.routes.stats.get_stats_tracker",
              AsyncMock(return_value=services["stats"])),
        patch("webhook_engine.api.routes.audit.get_audit_log",
              AsyncMock(return_value=services["audit"])),
    ]
    for p in patches:
        p.start()
    try:
        yield await aiohttp_client(app)
    finally:
        for p in patches:
            p.stop()


@pytest.fixture
def headers(store_id):
    return {"X-Store-Id": str(store_id)}


async def test_healthcheck(client):
    resp = await client.get("/health")
    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"


@pytest.mark.parametrize("value", [None, "not-a-uuid"])
async def test_store_header_is_required(client, value):
    headers = {"X-Store-Id": value} if value else {}
    resp = await client.get("/api/v1/subscriptions", headers=headers)
    assert resp.status == 400


async def test_create_subscription_returns_secret_once(client, services, headers, store_id):
    subscription = make_subscription(store_id=store_id)
    services["registry"].create.return_value = CreatedSubscription(subscription=subscription, secret=SECRET)
    body = {"name": "ERP", "url": "https://erp.example.com/hooks", "event_types": ["order.created"]}

    resp = await client.post("/api/v1/subscriptions", json=body, headers=headers)

    assert resp.status == 201
    data = await resp.json()
    assert data["secret"] == SECRET
    assert data["secret_hint"].startswith("whsec_****")
    services["registry"].create.assert_awaited_once_with(store_id, body)


async def test_create_subscription_validation_error(client, services, headers):
    services["registry"].create.side_effect = SubscriptionValidationError(
        "Invalid webhook subscription",
        errors=[{"type": "value_error", "loc": ("url",), "msg": "bad url"}],
    )

    resp = await client.post("/api/v1/subscriptions", json={"url": "ftp://x"}, headers=headers)

    assert resp.status == 400
    data = await resp.json()
    assert data["details"][0]["loc"] == ["url"]


async def test_create_subscription_rejects_non_object_body(client, headers):
    resp = await client.post("/api/v1/subscriptions", json=["a"], headers=headers)
    assert resp.status == 400


async def test_get_subscription_hides_secret(client, services, headers):
    subscription = make_subscription()
    services["registry"].get.return_value = subscription

    resp = await client.get(f"/api/v1/subscriptions/{subscription.id}", headers=headers)

    assert resp.status == 200
    text = await resp.text()
    assert SECRET not in text
    assert "secret_hint" in text


async def test_get_missing_subscription(client, services, headers):
    services["registry"].get.side_effect = NotFoundError("Webhook subscription not found")
    resp = await client.get(f"/api/v1/subscriptions/{uuid.uuid4()}", headers=headers)
    assert resp.status == 404


async def test_get_subscription_invalid_id(client, headers):
    resp = await client.get("/api/v1/subscriptions/nope", headers=headers)
    assert resp.status == 400


async def test_list_subscriptions_paginates(client, services, headers, store_id):
    services["registry"].list_subscriptions.return_value = ([make_subscription()], 11)

    resp = await client.get("/api/v1/subscriptions?limit=5&offset=5&active=true", headers=headers)

    assert resp.status == 200
    data = await resp.json()
    assert data["total"] == 11
    assert data["page"] == 2
    assert len(data["subscriptions"]) == 1
    services["registry"].list_subscriptions.assert_awaited_once_with(
        store_id, active=True, limit=5, offset=5
    )


async def test_update_subscription(client, services, headers):
    subscription = make_subscription(max_retries=5)
    services["registry"].update.return_value = subscription

    resp = await client.patch(
        f"/api/v1/subscriptions/{subscription.id}", json={"max_retries": 5}, headers=headers
    )

    assert resp.status == 200
    assert (await resp.json())["max_retries"] == 5


async def test_delete_subscription(client, services, headers):
    resp = await client.delete(f"/api/v1/subscriptions/{uuid.uuid4()}", headers=headers)
    assert resp.status == 204
    services["registry"].delete.assert_awaited_once()


async def test_rotate_secret(client, services, headers):
    services["registry"].rotate_secret.return_value = "whsec_new"
    resp = await client.post(f"/api/v1/subscriptions/{uuid.uuid4()}/rotate-secret", headers=headers)
    assert resp.status == 200
    assert (await resp.json())["secret"] == "whsec_new"


@pytest.mark.parametrize("action", ["activate", "deactivate"])
async def test_toggle_subscription(client, services, headers, action):
    getattr(services["registry"], action).return_value = make_subscription(is_active=action == "activate")
    resp = await client.post(f"/api/v1/subscriptions/{uuid.uuid4()}/{action}", headers=headers)
    assert resp.status == 200
    assert (await resp.json())["is_active"] is (action == "activate")


async def test_send_test_event(client, services, headers):
    services["recorder"].send_test_event.return_value = make_event(
        event_type="webhook.test", status=EventStatus.PENDING
    )
    resp = await client.post(f"/api/v1/subscriptions/{uuid.uuid4()}/test", headers=headers)
    assert resp.status == 202
    assert (await resp.json())["event_type"] == "webhook.test"


async def test_record_event(client, services, headers, store_id):
    services["recorder"].record.return_value = [make_event(status=EventStatus.PENDING)]

    resp = await client.post(
        "/api/v1/events",
        json={"event_type": "order.created", "payload": {"order_id": 1}},
        headers=headers,
    )

    assert resp.status == 202
    assert (await resp.json())["total"] == 1
    services["recorder"].record.assert_awaited_once_with(store_id, "order.created", {"order_id": 1})


async def test_record_event_requires_type(client, headers):
    resp = await client.post("/api/v1/events", json={"payload": {}}, headers=headers)
    assert resp.status == 400


async def test_list_events_filters(client, services, headers, store_id):
    sub_id = uuid.uuid4()
    resp = await client.get(
        f"/api/v1/events?status=failed&subscription_id={sub_id}", headers=headers
    )
    assert resp.status == 200
    services["events"].list_events.assert_awaited_once_with(
        store_id, status=EventStatus.FAILED, subscription_id=sub_id, limit=50, offset=0
    )


async def test_list_events_rejects_unknown_status(client, headers):
    resp = await client.get("/api/v1/events?status=lost", headers=headers)
    assert resp.status == 400


async def test_event_deliveries(client, services, headers):
    event = make_event()
    services["events"].list_deliveries.return_value = [make_delivery(event)]

    resp = await client.get(f"/api/v1/events/{event.id}/deliveries", headers=headers)

    assert resp.status == 200
    data = await resp.json()
    assert data["total"] == 1
    assert data["deliveries"][0]["attempt_number"] == 1


async def test_cancel_event_conflict(client, services, headers):
    services["scheduler"].cancel.side_effect = InvalidStatusTransitionError("delivered → cancelled")
    resp = await client.post(f"/api/v1/events/{uuid.uuid4()}/cancel", headers=headers)
    assert resp.status == 409


async def test_cancel_event_with_reason(client, services, headers, store_id):
    event = make_event(status=EventStatus.CANCELLED)
    services["scheduler"].cancel.return_value = event

    resp = await client.post(
        f"/api/v1/events/{event.id}/cancel", json={"reason": "refunded"}, headers=headers
    )

    assert resp.status == 200
    services["scheduler"].cancel.assert_awaited_once_with(store_id, event.id, reason="refunded")


async def test_reset_retries_missing_event(client, services, headers):
    services["scheduler"].reset_retries.side_effect = NotFoundError("Webhook event not found")
    resp = await client.post(f"/api/v1/events/{uuid.uuid4()}/reset-retries", headers=headers)
    assert resp.status == 404


async def test_stats_default_period(client, services, headers, store_id):
    services["stats"].statistics.return_value = WebhookStatistics(
        period=StatsPeriod.LAST_7_DAYS,
        total_events=4,
        delivered_events=3,
        failed_events=1,
        pending_events=0,
        active_subscriptions=1,
    )

    resp = await client.get("/api/v1/stats", headers=headers)

    assert resp.status == 200
    assert (await resp.json())["success_rate"] == 75.0
    services["stats"].statistics.assert_awaited_once_with(store_id, StatsPeriod.LAST_7_DAYS)


async def test_audit_logs_min_level(client, services, headers, store_id):
    resp = await client.get("/api/v1/audit-logs?level=error", headers=headers)

    assert resp.status == 200
    kwargs = services["audit"].list_entries.await_args.kwargs
    assert kwargs["min_level"] is AuditLevel.ERROR
