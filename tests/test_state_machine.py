from __future__ import annotations

import pytest

from webhook_engine.core.exceptions import InvalidStatusTransitionError
from webhook_engine.domain.enums import EventStatus
from webhook_engine.services.state_machine import (
    CANCELLABLE_STATUSES,
    can_transition,
    validate_event_transition,
)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (EventStatus.PENDING, EventStatus.PROCESSING),
        (EventStatus.PROCESSING, EventStatus.DELIVERED),
        (EventStatus.PROCESSING, EventStatus.PENDING),
        (EventStatus.PROCESSING, EventStatus.FAILED),
        (EventStatus.FAILED, EventStatus.PENDING),
    ],
)
def test_allowed_transitions(current, new):
    assert can_transition(current, new)
    validate_event_transition(current, new)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (EventStatus.DELIVERED, EventStatus.PENDING),
        (EventStatus.CANCELLED, EventStatus.PENDING),
        (EventStatus.FAILED, EventStatus.PROCESSING),
        (EventStatus.PENDING, EventStatus.DELIVERED),
        (EventStatus.DELIVERED, EventStatus.CANCELLED),
    ],
)
def test_rejected_transitions(current, new):
    assert not can_transition(current, new)
    with pytest.raises(InvalidStatusTransitionError):
        validate_event_transition(current, new)


def test_only_in_flight_events_are_cancellable():
    assert CANCELLABLE_STATUSES == {EventStatus.PENDING, EventStatus.PROCESSING}


def test_terminal_statuses():
    assert {s for s in EventStatus if s.is_terminal} == {
        EventStatus.DELIVERED,
        EventStatus.FAILED,
        EventStatus.CANCELLED,
    }
