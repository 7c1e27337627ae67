from webhook_engine.repositories.audit import AuditLogRepository
from webhook_engine.repositories.deliveries import WebhookDeliveryRepository
from webhook_engine.repositories.events import WebhookEventRepository
from webhook_engine.repositories.subscriptions import WebhookSubscriptionRepository

__all__ = [
    "AuditLogRepository",
    "WebhookDeliveryRepository",
    "WebhookEventRepository",
    "WebhookSubscriptionRepository",
]
