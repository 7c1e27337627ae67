"""Per-subscription delivery counters and per-store statistics."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from webhook_engine.domain.enums import EventStatus, StatsPeriod
from webhook_engine.domain.models import WebhookStatistics
from webhook_engine.repositories.events import WebhookEventRepository
from webhook_engine.repositories.subscriptions import WebhookSubscriptionRepository


def period_start(period: StatsPeriod, now: datetime) -> datetime:
    if period is StatsPeriod.TODAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    days = {
        StatsPeriod.LAST_7_DAYS: 7,
        StatsPeriod.LAST_30_DAYS: 30,
        StatsPeriod.LAST_90_DAYS: 90,
    }[period]
    return now - timedelta(days=days)


class StatsTracker:
    def __init__(
        self,
        subscriptions: WebhookSubscriptionRepository,
        events: WebhookEventRepository,
    ):
        self._subscriptions = subscriptions
        self._events = events

    async def update_delivery_stats(self, subscription_id: UUID, success: bool) -> None:
        """Count one attempt against the subscription's rolling counters."""
        await self._subscriptions.record_delivery_stats(subscription_id, success=success)

    async def statistics(
        self,
        store_id: UUID,
        period: StatsPeriod = StatsPeriod.LAST_7_DAYS,
        *,
        now: datetime | None = None,
    ) -> WebhookStatistics:
        now = now or datetime.now(timezone.utc)
        by_status = await self._events.count_by_status(store_id, created_since=period_start(period, now))
        return WebhookStatistics(
            period=period,
            total_events=sum(by_status.values()),
            delivered_events=by_status.get(EventStatus.DELIVERED.value, 0),
            failed_events=by_status.get(EventStatus.FAILED.value, 0),
            pending_events=await self._events.count_pending(store_id),
            active_subscriptions=await self._subscriptions.count_active(store_id),
        )
