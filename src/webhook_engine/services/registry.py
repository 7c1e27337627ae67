"""Subscription registry: integrator endpoints, secrets and delivery policy."""
from __future__ import annotations

import secrets
from typing import Any, Callable, List, Mapping
from uuid import UUID

from pydantic import BaseModel, ValidationError

from webhook_engine.core.exceptions import SubscriptionValidationError
from webhook_engine.domain.dto import SubscriptionCreate, SubscriptionUpdate
from webhook_engine.domain.models import SECRET_PREFIX, CreatedSubscription, Subscription
from webhook_engine.repositories.subscriptions import WebhookSubscriptionRepository
from webhook_engine.services.audit import AuditLog
from webhook_engine.services.state_machine import CANCELLABLE_STATUSES


def generate_secret() -> str:
    return SECRET_PREFIX + secrets.token_urlsafe(30)


def _validate(model: type[BaseModel], data: Mapping[str, Any] | BaseModel) -> Any:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        raise SubscriptionValidationError("Invalid webhook subscription", errors=errors) from exc


class SubscriptionRegistry:
    """Long-lived subscription configuration for every store.

    The plaintext secret leaves this service only from :meth:`create` and
    :meth:`rotate_secret`; everything else returns :class:`Subscription`,
    which serializes a redacted ``secret_hint`` instead.
    """

    def __init__(
        self,
        subscriptions: WebhookSubscriptionRepository,
        audit: AuditLog,
        *,
        secret_factory: Callable[[], str] = generate_secret,
    ):
        self._subscriptions = subscriptions
        self._audit = audit
        self._secret_factory = secret_factory

    async def create(
        self, store_id: UUID, data: Mapping[str, Any] | SubscriptionCreate
    ) -> CreatedSubscription:
        """Validate and persist a subscription; raises ``SubscriptionValidationError``."""
        dto: SubscriptionCreate = _validate(SubscriptionCreate, data)
        secret = self._secret_factory()
        subscription = await self._subscriptions.create(store_id, dto, secret=secret)
        await self._audit.info(
            f"Webhook subscription created: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
            context={"url": subscription.url, "event_types": subscription.event_types},
        )
        return CreatedSubscription(subscription=subscription, secret=secret)

    async def get(self, store_id: UUID, subscription_id: UUID) -> Subscription:
        return await self._subscriptions.get(store_id, subscription_id)

    async def list_subscriptions(
        self,
        store_id: UUID,
        *,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[Subscription], int]:
        return await self._subscriptions.list_by_store(
            store_id, active=active, limit=limit, offset=offset
        )

    async def update(
        self,
        store_id: UUID,
        subscription_id: UUID,
        data: Mapping[str, Any] | SubscriptionUpdate,
    ) -> Subscription:
        """Apply a partial update. Existing events keep their copied ``max_retries``."""
        dto: SubscriptionUpdate = _validate(SubscriptionUpdate, data)
        changes = dto.changes()
        subscription = await self._subscriptions.update(store_id, subscription_id, changes)
        await self._audit.info(
            f"Webhook subscription updated: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
            context={"changes": sorted(changes)},
        )
        return subscription

    async def rotate_secret(self, store_id: UUID, subscription_id: UUID) -> str:
        """Replace the secret; the previous one stops signing immediately."""
        secret = self._secret_factory()
        subscription = await self._subscriptions.set_secret(store_id, subscription_id, secret)
        await self._audit.warning(
            f"Webhook secret rotated: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
            context={"secret_hint": subscription.secret_hint},
        )
        return secret

    @staticmethod
    def is_subscribed_to(subscription: Subscription, event_type: str) -> bool:
        return subscription.is_subscribed_to(event_type)

    async def activate(self, store_id: UUID, subscription_id: UUID) -> Subscription:
        subscription = await self._subscriptions.set_active(store_id, subscription_id, True)
        await self._audit.info(
            f"Webhook subscription activated: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
        )
        return subscription

    async def deactivate(self, store_id: UUID, subscription_id: UUID) -> Subscription:
        subscription = await self._subscriptions.set_active(store_id, subscription_id, False)
        await self._audit.warning(
            f"Webhook subscription deactivated: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
        )
        return subscription

    async def delete(self, store_id: UUID, subscription_id: UUID) -> Subscription:
        """Soft-delete the subscription and cancel its outstanding events."""
        subscription, cancelled = await self._subscriptions.soft_delete(
            store_id, subscription_id, cancel_statuses=CANCELLABLE_STATUSES
        )
        await self._audit.info(
            f"Webhook subscription deleted: {subscription.name}",
            store_id=store_id,
            subscription_id=subscription.id,
            context={"cancelled_events": cancelled},
        )
        return subscription
