"""Retry scheduler: turns attempt outcomes into event state transitions.

Backoff for the N-th retry is ``base_delay * 2 ** (N - 1)``; with a base of
60s the retries wait 60s, 120s, 240s, ...  An event is retried while
``retry_count < max_retries`` and becomes ``failed`` afterwards, which only an
explicit :meth:`RetryScheduler.reset_retries` undoes.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from webhook_engine.core.exceptions import InvalidStatusTransitionError
from webhook_engine.domain.enums import DeliveryOutcome, EventStatus
from webhook_engine.domain.models import (
    ErrorHistoryEntry,
    EventResolution,
    Subscription,
    WebhookEvent,
)
from webhook_engine.repositories.events import WebhookEventRepository
from webhook_engine.services.audit import AuditLog
from webhook_engine.services.state_machine import CANCELLABLE_STATUSES, validate_event_transition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backoff_delay(base_delay_seconds: float, retry_number: int) -> float:
    """Delay before retry ``retry_number`` (1-based)."""
    if retry_number < 1:
        raise ValueError("retry_number is 1-based")
    return base_delay_seconds * 2 ** (retry_number - 1)


class RetryScheduler:
    def __init__(
        self,
        events: WebhookEventRepository,
        audit: AuditLog,
        *,
        error_history_limit: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._events = events
        self._audit = audit
        self._error_history_limit = max(1, error_history_limit)
        self._clock = clock

    def plan(
        self,
        event: WebhookEvent,
        outcome: DeliveryOutcome,
        *,
        base_delay_seconds: float,
        error: str | None = None,
        now: datetime | None = None,
    ) -> EventResolution:
        """Compute the post-attempt state of a claimed event without touching storage."""
        now = now or self._clock()
        if outcome is DeliveryOutcome.SUCCESS:
            validate_event_transition(event.status, EventStatus.DELIVERED)
            return EventResolution(
                status=EventStatus.DELIVERED,
                retry_count=event.retry_count,
                last_error=event.last_error,
                error_history=event.error_history,
                delivered_at=now,
            )

        message = error or f"Delivery {outcome.value}"
        history = [
            *event.error_history,
            ErrorHistoryEntry(message=message, retry_count=event.retry_count, failed_at=now),
        ][-self._error_history_limit:]

        if event.can_retry:
            validate_event_transition(event.status, EventStatus.PENDING)
            retry_count = event.retry_count + 1
            delay = backoff_delay(base_delay_seconds, retry_count)
            return EventResolution(
                status=EventStatus.PENDING,
                retry_count=retry_count,
                next_retry_at=now + timedelta(seconds=delay),
                last_error=message,
                error_history=history,
                retry_delay_seconds=delay,
            )

        validate_event_transition(event.status, EventStatus.FAILED)
        return EventResolution(
            status=EventStatus.FAILED,
            retry_count=event.retry_count,
            last_error=message,
            error_history=history,
        )

    async def resolve(
        self,
        event: WebhookEvent,
        outcome: DeliveryOutcome,
        *,
        subscription: Subscription,
        worker_id: str,
        error: str | None = None,
    ) -> tuple[EventResolution, WebhookEvent | None]:
        """Persist the outcome of one attempt under ``worker_id``'s lease.

        The stored event is ``None`` when the lease was lost in the meantime.
        """
        resolution = self.plan(
            event,
            outcome,
            base_delay_seconds=subscription.retry_delay_seconds,
            error=error,
        )
        stored = await self._events.apply_resolution(
            event.id, worker_id=worker_id, resolution=resolution
        )
        return resolution, stored

    async def cancel(self, store_id: UUID, event_pk: UUID, *, reason: str | None = None) -> WebhookEvent:
        """Cancel a pending or processing event. Does not abort an in-flight request."""
        cancelled = await self._events.cancel(store_id, event_pk, statuses=CANCELLABLE_STATUSES)
        if cancelled is None:
            current = await self._events.get(store_id, event_pk)
            validate_event_transition(current.status, EventStatus.CANCELLED)
            # Status changed between the update and the read; report it as a conflict.
            raise InvalidStatusTransitionError(
                f"Webhook event {current.event_id} could not be cancelled"
            )
        await self._audit.warning(
            f"Webhook event cancelled: {cancelled.event_type}",
            store_id=store_id,
            subscription_id=cancelled.subscription_id,
            event_id=cancelled.id,
            context={"event_id": cancelled.event_id, "reason": reason},
        )
        return cancelled

    async def reset_retries(self, store_id: UUID, event_pk: UUID) -> WebhookEvent:
        """Return a ``failed`` event to the pending pool with a clean retry budget."""
        reset = await self._events.reset_retries(store_id, event_pk)
        if reset is None:
            current = await self._events.get(store_id, event_pk)
            if current.status is not EventStatus.FAILED:
                raise InvalidStatusTransitionError(
                    f"Only failed events can be reset (event is {current.status.value})"
                )
            raise InvalidStatusTransitionError(
                f"Webhook event {current.event_id} could not be reset"
            )
        await self._audit.info(
            f"Webhook event retry initiated: {reset.event_type}",
            store_id=store_id,
            subscription_id=reset.subscription_id,
            event_id=reset.id,
            context={"event_id": reset.event_id},
        )
        return reset
