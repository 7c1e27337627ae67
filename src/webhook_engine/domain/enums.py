"""Webhook engine enums."""
from __future__ import annotations

from enum import Enum


class EventStatus(str, Enum):
    """Lifecycle of one delivery obligation."""

    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EVENT_STATUSES


TERMINAL_EVENT_STATUSES = frozenset(
    {EventStatus.DELIVERED, EventStatus.FAILED, EventStatus.CANCELLED}
)


class DeliveryStatus(str, Enum):
    """Status of a single HTTP attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class DeliveryOutcome(str, Enum):
    """What the dispatcher reports to the retry scheduler."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def delivery_status(self) -> DeliveryStatus:
        return {
            DeliveryOutcome.SUCCESS: DeliveryStatus.SUCCESS,
            DeliveryOutcome.FAILURE: DeliveryStatus.FAILED,
            DeliveryOutcome.TIMEOUT: DeliveryStatus.TIMEOUT,
        }[self]


class AuditLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _AUDIT_SEVERITY[self]

    def at_or_above(self) -> list["AuditLevel"]:
        """Levels at least as severe as this one."""
        return [level for level in AuditLevel if level.severity >= self.severity]


_AUDIT_SEVERITY = {
    AuditLevel.DEBUG: 10,
    AuditLevel.INFO: 20,
    AuditLevel.WARNING: 30,
    AuditLevel.ERROR: 40,
    AuditLevel.CRITICAL: 50,
}


class StatsPeriod(str, Enum):
    TODAY = "today"
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"
