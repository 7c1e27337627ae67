"""Worker: flag active subscriptions with a high failure rate."""
from __future__ import annotations

from datetime import datetime

from webhook_common.db.pool import get_pool

from webhook_engine.repositories import AuditLogRepository, WebhookSubscriptionRepository
from webhook_engine.services.audit import AuditLog
from webhook_engine.settings import settings


async def subscription_health(now: datetime) -> str | None:
    """Write a warning audit entry per unhealthy subscription."""
    pool = await get_pool()
    unhealthy = await WebhookSubscriptionRepository(pool).list_unhealthy(
        min_deliveries=settings.webhook_failure_rate_min_deliveries,
        failure_rate_percent=settings.webhook_failure_rate_alert_percent,
    )
    if not unhealthy:
        return None
    audit = AuditLog(AuditLogRepository(pool))
    for subscription in unhealthy:
        await audit.warning(
            f"High failure rate for webhook subscription: {subscription.name}",
            store_id=subscription.store_id,
            subscription_id=subscription.id,
            context={
                "failure_rate": subscription.failure_rate,
                "total_deliveries": subscription.total_deliveries,
                "failed_deliveries": subscription.failed_deliveries,
                "threshold_percent": settings.webhook_failure_rate_alert_percent,
                "checked_at": now.isoformat(),
            },
        )
    return f"unhealthy={len(unhealthy)}"
