from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from webhook_engine.domain.enums import StatsPeriod
from webhook_engine.services.stats import StatsTracker, period_start

NOW = datetime(2024, 3, 15, 18, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("period", "expected"),
    [
        (StatsPeriod.TODAY, datetime(2024, 3, 15, tzinfo=timezone.utc)),
        (StatsPeriod.LAST_7_DAYS, datetime(2024, 3, 8, 18, 30, tzinfo=timezone.utc)),
        (StatsPeriod.LAST_30_DAYS, datetime(2024, 2, 14, 18, 30, tzinfo=timezone.utc)),
        (StatsPeriod.LAST_90_DAYS, datetime(2023, 12, 16, 18, 30, tzinfo=timezone.utc)),
    ],
)
def test_period_start(period, expected):
    assert period_start(period, NOW) == expected


@pytest.fixture
def repos():
    subscriptions = MagicMock()
    subscriptions.record_delivery_stats = AsyncMock()
    subscriptions.count_active = AsyncMock(return_value=2)
    events = MagicMock()
    events.count_by_status = AsyncMock(return_value={"delivered": 6, "failed": 2, "pending": 2})
    events.count_pending = AsyncMock(return_value=3)
    return subscriptions, events


async def test_update_delivery_stats(repos):
    subscriptions, events = repos
    tracker = StatsTracker(subscriptions, events)

    subscription_id = uuid.uuid4()
    await tracker.update_delivery_stats(subscription_id, False)

    subscriptions.record_delivery_stats.assert_awaited_once_with(subscription_id, success=False)


async def test_statistics(repos, store_id):
    subscriptions, events = repos
    tracker = StatsTracker(subscriptions, events)

    stats = await tracker.statistics(store_id, StatsPeriod.LAST_30_DAYS, now=NOW)

    events.count_by_status.assert_awaited_once_with(
        store_id, created_since=period_start(StatsPeriod.LAST_30_DAYS, NOW)
    )
    dumped = stats.model_dump(mode="json")
    assert dumped["total_events"] == 10
    assert dumped["delivered_events"] == 6
    assert dumped["failed_events"] == 2
    assert dumped["pending_events"] == 3
    assert dumped["active_subscriptions"] == 2
    assert dumped["success_rate"] == 60.0
    assert dumped["failure_rate"] == 20.0
    assert dumped["period"] == "last_30_days"


async def test_statistics_without_events(repos, store_id):
    subscriptions, events = repos
    events.count_by_status.return_value = {}
    stats = await StatsTracker(subscriptions, events).statistics(store_id, now=NOW)
    assert stats.success_rate == 0.0
    assert stats.period is StatsPeriod.LAST_7_DAYS
