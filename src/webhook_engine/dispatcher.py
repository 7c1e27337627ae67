"""Delivery dispatcher: claims due events and POSTs signed payloads.

Every worker loop owns a distinct ``worker_id``. Events are leased through
one conditional UPDATE (see ``WebhookEventRepository.claim_due``); outcomes
are written back only while the lease is still held, so at most one worker
acts on an event at a time and a retried event always carries its original
``event_id``.
"""
from __future__ import annotations

import asyncio
import hmac
import json
import os
import socket
import time
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, List
from uuid import UUID, uuid4

import aiohttp
import structlog
from aiohttp import ClientSession, ClientTimeout, web

from webhook_common.db.pool import get_pool
from webhook_engine.domain.enums import DeliveryOutcome, DeliveryStatus, EventStatus
from webhook_engine.domain.headers import (
    ATTEMPT_HEADER,
    DELIVERY_ID_HEADER,
    EVENT_ID_HEADER,
    EVENT_TYPE_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
)
from webhook_engine.domain.models import Delivery, Subscription, WebhookEvent
from webhook_engine.otel import get_tracer
from webhook_engine.repositories import (
    AuditLogRepository,
    WebhookDeliveryRepository,
    WebhookEventRepository,
    WebhookSubscriptionRepository,
)
from webhook_engine.services.audit import AuditLog
from webhook_engine.services.retry import RetryScheduler
from webhook_engine.services.stats import StatsTracker
from webhook_engine.settings import settings

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

_SESSION_KEY = "webhook_http_session"
_TASKS_KEY = "webhook_dispatcher_tasks"

_OUTCOME_BY_STATUS = {outcome.delivery_status: outcome for outcome in DeliveryOutcome}


def encode_payload(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()
    return f"sha256={digest}"


def build_headers(
    event: WebhookEvent,
    subscription: Subscription,
    *,
    body: bytes,
    delivery_id: UUID,
    user_agent: str,
    timestamp: int | None = None,
) -> dict[str, str]:
    """Custom headers first; engine headers are applied last and always win."""
    headers = dict(subscription.custom_headers)
    headers.update(
        {
            "Content-Type": "application/json",
            "User-Agent": user_agent,
            SIGNATURE_HEADER: sign_payload(subscription.secret.get_secret_value(), body),
            EVENT_TYPE_HEADER: event.event_type,
            EVENT_ID_HEADER: event.event_id,
            DELIVERY_ID_HEADER: str(delivery_id),
            TIMESTAMP_HEADER: str(timestamp if timestamp is not None else int(time.time())),
            ATTEMPT_HEADER: str(event.attempt_number),
        }
    )
    return headers


def default_worker_id(index: int = 0) -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{index}"


@dataclass
class AttemptResult:
    """Raw result of one HTTP call."""

    status: DeliveryStatus
    duration_ms: int
    response_status: int | None = None
    response_body: str | None = None
    response_headers: dict[str, str] | None = None
    error: str | None = None


async def send_request(
    session: ClientSession,
    url: str,
    *,
    body: bytes,
    headers: dict[str, str],
    timeout_seconds: float,
    body_limit: int = 2000,
) -> AttemptResult:
    """POST ``body`` and classify the result; never raises for network problems."""
    started = time.monotonic()

    def elapsed() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        async with session.post(
            url,
            data=body,
            headers=headers,
            timeout=ClientTimeout(total=timeout_seconds),
            allow_redirects=False,
        ) as resp:
            raw = await resp.content.read(body_limit * 4)
            text = raw.decode("utf-8", errors="replace")[:body_limit]
            response_headers = {k: v for k, v in resp.headers.items()}
            if 200 <= resp.status < 300:
                return AttemptResult(
                    status=DeliveryStatus.SUCCESS,
                    duration_ms=elapsed(),
                    response_status=resp.status,
                    response_body=text,
                    response_headers=response_headers,
                )
            return AttemptResult(
                status=DeliveryStatus.FAILED,
                duration_ms=elapsed(),
                response_status=resp.status,
                response_body=text,
                response_headers=response_headers,
                error=f"HTTP {resp.status}: {text}",
            )
    except asyncio.TimeoutError:
        return AttemptResult(
            status=DeliveryStatus.TIMEOUT,
            duration_ms=elapsed(),
            error=f"Request timed out after {timeout_seconds}s",
        )
    except (aiohttp.ClientError, OSError) as exc:
        return AttemptResult(
            status=DeliveryStatus.FAILED,
            duration_ms=elapsed(),
            error=f"Connection error: {exc}",
        )
    except Exception as exc:
        return AttemptResult(
            status=DeliveryStatus.FAILED,
            duration_ms=elapsed(),
            error=f"Exception: {type(exc).__name__}: {exc}",
        )


class DeliveryDispatcher:
    """One worker: claim → dispatch → resolve, for a batch at a time."""

    def __init__(
        self,
        *,
        session: ClientSession,
        subscriptions: WebhookSubscriptionRepository,
        events: WebhookEventRepository,
        deliveries: WebhookDeliveryRepository,
        scheduler: RetryScheduler,
        stats: StatsTracker,
        audit: AuditLog,
        worker_id: str,
        lease_timeout_seconds: float = 360.0,
        batch_size: int = 50,
        max_concurrency: int = 10,
        response_body_limit: int = 2000,
        user_agent: str = "Commerce-Webhook/1.0",
    ):
        self._session = session
        self._subscriptions = subscriptions
        self._events = events
        self._deliveries = deliveries
        self._scheduler = scheduler
        self._stats = stats
        self._audit = audit
        self.worker_id = worker_id
        self._lease_timeout_seconds = lease_timeout_seconds
        # never hold more leases than can be sent at once
        self._claim_limit = max(1, min(batch_size, max_concurrency))
        self._semaphore = asyncio.Semaphore(self._claim_limit)
        self._response_body_limit = response_body_limit
        self._user_agent = user_agent

    async def claim_due_events(self, limit: int | None = None) -> List[WebhookEvent]:
        return await self._events.claim_due(
            worker_id=self.worker_id,
            limit=limit or self._claim_limit,
            lease_timeout_seconds=self._lease_timeout_seconds,
        )

    async def dispatch(self, event: WebhookEvent, subscription: Subscription) -> Delivery:
        """Send one attempt and return its finalized delivery record."""
        body = encode_payload(event.payload)
        delivery_id = uuid4()
        headers = build_headers(
            event,
            subscription,
            body=body,
            delivery_id=delivery_id,
            user_agent=self._user_agent,
        )
        await self._deliveries.create_pending(
            delivery_id=delivery_id,
            event_pk=event.id,
            subscription_id=subscription.id,
            attempt_number=event.attempt_number,
            url=subscription.url,
            payload=event.payload,
            request_headers=headers,
            worker_id=self.worker_id,
        )
        result = await send_request(
            self._session,
            subscription.url,
            body=body,
            headers=headers,
            timeout_seconds=subscription.timeout_seconds,
            body_limit=self._response_body_limit,
        )
        return await self.record_attempt(delivery_id, result)

    async def record_attempt(self, delivery_id: UUID, result: AttemptResult) -> Delivery:
        """Finalize the pending delivery row with the response snapshot."""
        return await self._deliveries.finalize(
            delivery_id,
            status=result.status,
            duration_ms=result.duration_ms,
            response_status=result.response_status,
            response_body=result.response_body,
            response_headers=result.response_headers,
            error_message=result.error,
        )

    async def process(self, event: WebhookEvent) -> WebhookEvent | None:
        """Deliver one claimed event and record the outcome.

        Returns the stored event, or ``None`` when nothing was written back
        (subscription no longer active, or the lease was lost).
        """
        subscription = await self._subscriptions.get_by_id(event.subscription_id)
        if subscription is None or not subscription.accepts_deliveries:
            await self._events.release_lease(event.id, worker_id=self.worker_id)
            await self._audit.warning(
                "Cannot deliver event: subscription inactive or not found",
                store_id=event.store_id,
                subscription_id=event.subscription_id,
                event_id=event.id,
                context={"event_id": event.event_id},
            )
            return None

        if not await self._events.refresh_lease(event.id, worker_id=self.worker_id):
            await self._audit.warning(
                f"Lease lost before dispatch, attempt skipped: {event.event_type}",
                store_id=event.store_id,
                subscription_id=event.subscription_id,
                event_id=event.id,
                context={"event_id": event.event_id, "worker_id": self.worker_id},
            )
            return None

        with tracer.start_as_current_span(
            "webhook.dispatch",
            attributes={
                "webhook.event_id": event.event_id,
                "webhook.event_type": event.event_type,
                "webhook.attempt": event.attempt_number,
            },
        ) as span:
            delivery = await self.dispatch(event, subscription)
            span.set_attribute("webhook.delivery_status", delivery.status.value)
            if delivery.response_status is not None:
                span.set_attribute("http.status_code", delivery.response_status)

        success = delivery.status is DeliveryStatus.SUCCESS
        await self._stats.update_delivery_stats(subscription.id, success)
        resolution, stored = await self._scheduler.resolve(
            event,
            _OUTCOME_BY_STATUS[delivery.status],
            subscription=subscription,
            worker_id=self.worker_id,
            error=delivery.error_message,
        )

        audit_ids = {
            "store_id": event.store_id,
            "subscription_id": subscription.id,
            "event_id": event.id,
            "delivery_id": delivery.id,
        }
        if stored is None:
            await self._audit.warning(
                f"Lease lost before outcome was recorded: {event.event_type}",
                context={
                    "event_id": event.event_id,
                    "worker_id": self.worker_id,
                    "delivery_status": delivery.status.value,
                },
                **audit_ids,
            )
        elif success:
            await self._audit.info(
                f"Webhook delivered successfully: {event.event_type}",
                context={
                    "event_id": event.event_id,
                    "status_code": delivery.response_status,
                    "duration_ms": delivery.duration_ms,
                    "attempt": delivery.attempt_number,
                },
                **audit_ids,
            )
        else:
            will_retry = resolution.status is EventStatus.PENDING
            await self._audit.error(
                f"Webhook delivery failed: {event.event_type}",
                context={
                    "event_id": event.event_id,
                    "delivery_status": delivery.status.value,
                    "status_code": delivery.response_status,
                    "error": delivery.error_message,
                    "retry_count": resolution.retry_count,
                    "will_retry": will_retry,
                    "next_retry_at": (
                        resolution.next_retry_at.isoformat() if resolution.next_retry_at else None
                    ),
                },
                **audit_ids,
            )
        return stored

    async def _process_guarded(self, event: WebhookEvent) -> None:
        async with self._semaphore:
            try:
                await self.process(event)
            except Exception as exc:
                logger.exception(
                    "webhook processing crashed",
                    event_id=event.event_id,
                    worker_id=self.worker_id,
                )
                try:
                    await self._audit.critical(
                        f"Webhook delivery exception: {event.event_type}",
                        store_id=event.store_id,
                        subscription_id=event.subscription_id,
                        event_id=event.id,
                        context={"event_id": event.event_id, "exception": repr(exc)},
                    )
                except Exception:
                    logger.exception("audit write failed", event_id=event.event_id)

    async def run_once(self) -> int:
        """Claim one batch and process it; returns the number of claimed events."""
        events = await self.claim_due_events()
        if events:
            await asyncio.gather(*(self._process_guarded(e) for e in events))
        return len(events)

    async def run_forever(self, interval_seconds: float) -> None:
        logger.info("webhook dispatcher started", worker_id=self.worker_id)
        while True:
            try:
                claimed = await self.run_once()
            except asyncio.CancelledError:
                logger.info("webhook dispatcher stopped", worker_id=self.worker_id)
                raise
            except Exception:
                logger.exception("webhook dispatcher sweep failed", worker_id=self.worker_id)
                claimed = 0
            # a full batch means more work is probably waiting
            if claimed < self._claim_limit:
                await asyncio.sleep(interval_seconds)


async def build_dispatcher(session: ClientSession, worker_id: str) -> DeliveryDispatcher:
    pool = await get_pool()
    events = WebhookEventRepository(pool)
    subscriptions = WebhookSubscriptionRepository(pool)
    audit = AuditLog(AuditLogRepository(pool))
    return DeliveryDispatcher(
        session=session,
        subscriptions=subscriptions,
        events=events,
        deliveries=WebhookDeliveryRepository(pool),
        scheduler=RetryScheduler(
            events, audit, error_history_limit=settings.webhook_error_history_limit
        ),
        stats=StatsTracker(subscriptions, events),
        audit=audit,
        worker_id=worker_id,
        lease_timeout_seconds=settings.webhook_lease_timeout_seconds,
        batch_size=settings.webhook_dispatch_batch_size,
        max_concurrency=settings.webhook_dispatch_max_concurrency,
        response_body_limit=settings.webhook_response_body_limit,
        user_agent=settings.webhook_user_agent,
    )


async def start_webhook_dispatcher(app: web.Application) -> None:
    session = ClientSession()
    app[_SESSION_KEY] = session
    tasks = []
    for index in range(settings.webhook_dispatch_workers):
        dispatcher = await build_dispatcher(session, default_worker_id(index))
        tasks.append(
            asyncio.create_task(
                dispatcher.run_forever(settings.webhook_dispatch_interval_seconds)
            )
        )
    app[_TASKS_KEY] = tasks


async def stop_webhook_dispatcher(app: web.Application) -> None:
    tasks = app.get(_TASKS_KEY) or []
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    session = app.get(_SESSION_KEY)
    if session is not None:
        await session.close()
