"""Domain services exports."""

from webhook_engine.services.audit import AuditLog
from webhook_engine.services.events import WebhookEventService
from webhook_engine.services.recorder import EventRecorder
from webhook_engine.services.registry import SubscriptionRegistry
from webhook_engine.services.retry import RetryScheduler
from webhook_engine.services.stats import StatsTracker

__all__ = [
    "AuditLog",
    "EventRecorder",
    "RetryScheduler",
    "StatsTracker",
    "SubscriptionRegistry",
    "WebhookEventService",
]
