"""Subscription registry behaviour with mocked repositories."""
from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from webhook_engine.core.exceptions import NotFoundError, SubscriptionValidationError
from webhook_engine.domain.enums import AuditLevel
from webhook_engine.domain.models import SECRET_PREFIX
from webhook_engine.services.registry import SubscriptionRegistry, generate_secret
from webhook_engine.services.state_machine import CANCELLABLE_STATUSES

from tests.factories import make_subscription


@pytest.fixture
def subscriptions_repo():
    repo = MagicMock()
    for name in ("create", "get", "update", "set_active", "set_secret", "soft_delete", "list_by_store"):
        setattr(repo, name, AsyncMock())
    return repo


@pytest.fixture
def registry(subscriptions_repo, audit):
    return SubscriptionRegistry(
        subscriptions_repo, audit, secret_factory=lambda: "whsec_fixed-secret-abcd"
    )


VALID = {"name": "ERP", "url": "https://erp.example.com/hooks", "event_types": ["order.created"]}


def test_generated_secrets_are_prefixed_and_unique():
    first, second = generate_secret(), generate_secret()
    assert first.startswith(SECRET_PREFIX)
    assert len(first) > 30
    assert first != second


async def test_create_returns_plaintext_secret_once(registry, subscriptions_repo, audit_levels, store_id):
    stored = make_subscription(store_id=store_id, secret="whsec_fixed-secret-abcd")
    subscriptions_repo.create.return_value = stored

    created = await registry.create(store_id, VALID)

    assert created.secret == "whsec_fixed-secret-abcd"
    assert created.subscription.model_dump(mode="json")["secret_hint"] == "whsec_****abcd"
    _, dto = subscriptions_repo.create.await_args.args
    assert dto.event_types == ["order.created"]
    assert subscriptions_repo.create.await_args.kwargs == {"secret": "whsec_fixed-secret-abcd"}
    assert audit_levels() == [AuditLevel.INFO]


async def test_create_rejects_invalid_url_without_persisting(registry, subscriptions_repo, store_id):
    with pytest.raises(SubscriptionValidationError) as exc_info:
        await registry.create(store_id, {**VALID, "url": "ftp://erp.example.com"})

    assert exc_info.value.errors[0]["loc"] == ("url",)
    subscriptions_repo.create.assert_not_awaited()


async def test_update_passes_only_changed_columns(registry, subscriptions_repo, store_id):
    subscriptions_repo.update.return_value = make_subscription(max_retries=5)
    sub_id = uuid.uuid4()

    await registry.update(store_id, sub_id, {"max_retries": 5})

    subscriptions_repo.update.assert_awaited_once_with(store_id, sub_id, {"max_retries": 5})


async def test_rotate_secret_replaces_secret(registry, subscriptions_repo, audit_levels, store_id):
    subscriptions_repo.set_secret.return_value = make_subscription(secret="whsec_fixed-secret-abcd")
    sub_id = uuid.uuid4()

    secret = await registry.rotate_secret(store_id, sub_id)

    assert secret == "whsec_fixed-secret-abcd"
    subscriptions_repo.set_secret.assert_awaited_once_with(store_id, sub_id, secret)
    assert audit_levels() == [AuditLevel.WARNING]


async def test_deactivate_and_activate(registry, subscriptions_repo, audit_levels, store_id):
    sub_id = uuid.uuid4()
    subscriptions_repo.set_active.side_effect = [
        make_subscription(id=sub_id, is_active=False),
        make_subscription(id=sub_id, is_active=True),
    ]

    assert (await registry.deactivate(store_id, sub_id)).is_active is False
    assert (await registry.activate(store_id, sub_id)).is_active is True
    assert audit_levels() == [AuditLevel.WARNING, AuditLevel.INFO]


async def test_delete_cancels_outstanding_events(registry, subscriptions_repo, audit_repository, store_id):
    deleted = make_subscription(is_active=False)
    subscriptions_repo.soft_delete.return_value = (deleted, 2)

    await registry.delete(store_id, deleted.id)

    subscriptions_repo.soft_delete.assert_awaited_once_with(
        store_id, deleted.id, cancel_statuses=CANCELLABLE_STATUSES
    )
    assert audit_repository.entries[-1].context == {"cancelled_events": 2}


async def test_failed_delete_propagates_without_audit(registry, subscriptions_repo, audit_repository, store_id):
    subscriptions_repo.soft_delete.side_effect = ConnectionError("connection lost")

    with pytest.raises(ConnectionError):
        await registry.delete(store_id, uuid.uuid4())

    assert audit_repository.entries == []


async def test_get_missing_subscription(registry, subscriptions_repo, store_id):
    subscriptions_repo.get.side_effect = NotFoundError("Webhook subscription not found")

    with pytest.raises(NotFoundError):
        await registry.get(store_id, uuid.uuid4())


def test_is_subscribed_to():
    subscription = make_subscription(event_types=["order.created"])
    assert SubscriptionRegistry.is_subscribed_to(subscription, "order.created")
    assert not SubscriptionRegistry.is_subscribed_to(subscription, "order.paid")
