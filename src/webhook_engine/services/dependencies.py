"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from aiohttp import web

from webhook_common.db.pool import get_pool
from webhook_engine.repositories import (
    AuditLogRepository,
    WebhookDeliveryRepository,
    WebhookEventRepository,
    WebhookSubscriptionRepository,
)
from webhook_engine.services import (
    AuditLog,
    EventRecorder,
    RetryScheduler,
    StatsTracker,
    SubscriptionRegistry,
    WebhookEventService,
)
from webhook_engine.settings import settings

TService = TypeVar("TService")

_REGISTRY_KEY = "subscription_registry"
_RECORDER_KEY = "event_recorder"
_EVENT_SERVICE_KEY = "webhook_event_service"
_RETRY_SCHEDULER_KEY = "retry_scheduler"
_STATS_KEY = "stats_tracker"
_AUDIT_KEY = "audit_log"

STORE_ID_HEADER = "X-Store-Id"


def require_store_id(request: web.Request) -> UUID:
    """Tenant scope of the request, taken from the ``X-Store-Id`` header."""
    value = request.headers.get(STORE_ID_HEADER)
    if value is None:
        raise web.HTTPBadRequest(text=f"Header {STORE_ID_HEADER} is required")
    try:
        return UUID(value)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {STORE_ID_HEADER}") from exc


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


async def get_audit_log(request: web.Request) -> AuditLog:
    async def builder(_: web.Request) -> AuditLog:
        pool = await get_pool()
        return AuditLog(AuditLogRepository(pool))

    return await _get_or_create_service(request, _AUDIT_KEY, builder)


async def get_subscription_registry(request: web.Request) -> SubscriptionRegistry:
    async def builder(req: web.Request) -> SubscriptionRegistry:
        pool = await get_pool()
        audit = await get_audit_log(req)
        return SubscriptionRegistry(WebhookSubscriptionRepository(pool), audit)

    return await _get_or_create_service(request, _REGISTRY_KEY, builder)


async def get_event_recorder(request: web.Request) -> EventRecorder:
    async def builder(req: web.Request) -> EventRecorder:
        pool = await get_pool()
        audit = await get_audit_log(req)
        return EventRecorder(
            WebhookSubscriptionRepository(pool), WebhookEventRepository(pool), audit
        )

    return await _get_or_create_service(request, _RECORDER_KEY, builder)


async def get_event_service(request: web.Request) -> WebhookEventService:
    async def builder(_: web.Request) -> WebhookEventService:
        pool = await get_pool()
        return WebhookEventService(WebhookEventRepository(pool), WebhookDeliveryRepository(pool))

    return await _get_or_create_service(request, _EVENT_SERVICE_KEY, builder)


async def get_retry_scheduler(request: web.Request) -> RetryScheduler:
    async def builder(req: web.Request) -> RetryScheduler:
        pool = await get_pool()
        audit = await get_audit_log(req)
        return RetryScheduler(
            WebhookEventRepository(pool),
            audit,
            error_history_limit=settings.webhook_error_history_limit,
        )

    return await _get_or_create_service(request, _RETRY_SCHEDULER_KEY, builder)


async def get_stats_tracker(request: web.Request) -> StatsTracker:
    async def builder(_: web.Request) -> StatsTracker:
        pool = await get_pool()
        return StatsTracker(WebhookSubscriptionRepository(pool), WebhookEventRepository(pool))

    return await _get_or_create_service(request, _STATS_KEY, builder)
