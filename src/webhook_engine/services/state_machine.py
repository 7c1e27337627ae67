"""Webhook event status transitions."""
from __future__ import annotations

from webhook_engine.core.exceptions import InvalidStatusTransitionError
from webhook_engine.domain.enums import EventStatus

EVENT_TRANSITIONS: dict[EventStatus, set[EventStatus]] = {
    EventStatus.PENDING: {EventStatus.PROCESSING, EventStatus.CANCELLED},
    EventStatus.PROCESSING: {
        EventStatus.DELIVERED,
        EventStatus.PENDING,
        EventStatus.FAILED,
        EventStatus.CANCELLED,
    },
    # operator reset only
    EventStatus.FAILED: {EventStatus.PENDING},
    EventStatus.DELIVERED: set(),
    EventStatus.CANCELLED: set(),
}

CANCELLABLE_STATUSES = frozenset(
    status for status, targets in EVENT_TRANSITIONS.items() if EventStatus.CANCELLED in targets
)


def can_transition(current: EventStatus, new: EventStatus) -> bool:
    return new in EVENT_TRANSITIONS.get(current, set())


def validate_event_transition(current: EventStatus, new: EventStatus) -> None:
    if not can_transition(current, new):
        raise InvalidStatusTransitionError(
            f"Invalid webhook event status transition: {current.value} → {new.value}"
        )
