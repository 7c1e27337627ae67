"""Webhook engine domain models."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, SecretStr, computed_field

from webhook_engine.domain.enums import AuditLevel, DeliveryStatus, EventStatus, StatsPeriod

SECRET_PREFIX = "whsec_"


def redact_secret(secret: str) -> str:
    """``whsec_abcdef...wxyz`` -> ``whsec_****wxyz``."""
    return f"{SECRET_PREFIX}****{secret[-4:]}"


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


class Subscription(BaseModel):
    """An integrator endpoint. The secret is never serialized."""

    id: UUID
    store_id: UUID
    name: str
    url: str
    description: str | None = None
    event_types: list[str] = Field(default_factory=list)
    secret: SecretStr = Field(exclude=True, repr=False)
    is_active: bool = True
    timeout_seconds: int = 30
    max_retries: int = 3
    retry_delay_seconds: int = 60
    custom_headers: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    last_delivery_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def secret_hint(self) -> str:
        return redact_secret(self.secret.get_secret_value())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        return _rate(self.successful_deliveries, self.total_deliveries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failure_rate(self) -> float:
        return _rate(self.failed_deliveries, self.total_deliveries)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def accepts_deliveries(self) -> bool:
        return self.is_active and not self.is_deleted

    def is_subscribed_to(self, event_type: str) -> bool:
        return event_type in self.event_types


class CreatedSubscription(BaseModel):
    """Returned by create/rotate only: the single place a plaintext secret appears."""

    subscription: Subscription
    secret: str

    def to_response(self) -> dict[str, Any]:
        payload = self.subscription.model_dump(mode="json")
        payload["secret"] = self.secret
        return payload


class ErrorHistoryEntry(BaseModel):
    message: str
    retry_count: int
    failed_at: datetime


class WebhookEvent(BaseModel):
    """One delivery obligation of one domain occurrence for one subscription."""

    id: UUID
    event_id: str
    subscription_id: UUID
    store_id: UUID
    event_type: str
    payload: Any
    status: EventStatus
    retry_count: int = 0
    max_retries: int
    next_retry_at: datetime | None = None
    last_error: str | None = None
    error_history: list[ErrorHistoryEntry] = Field(default_factory=list)
    processing_at: datetime | None = None
    processing_by: str | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def attempt_number(self) -> int:
        return self.retry_count + 1

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries


class EventResolution(BaseModel):
    """Field values an event takes after one attempt is resolved."""

    status: EventStatus
    retry_count: int
    next_retry_at: datetime | None = None
    last_error: str | None = None
    error_history: list[ErrorHistoryEntry] = Field(default_factory=list)
    delivered_at: datetime | None = None
    retry_delay_seconds: float | None = None


class Delivery(BaseModel):
    """Snapshot of one HTTP attempt."""

    id: UUID
    event_id: UUID
    subscription_id: UUID
    attempt_number: int
    url: str
    payload: Any
    request_headers: dict[str, str] = Field(default_factory=dict)
    status: DeliveryStatus
    response_status: int | None = None
    response_body: str | None = None
    response_headers: dict[str, str] | None = None
    error_message: str | None = None
    worker_id: str | None = None
    sent_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None


class AuditLogEntry(BaseModel):
    id: int
    store_id: UUID | None = None
    level: AuditLevel
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    subscription_id: UUID | None = None
    event_id: UUID | None = None
    delivery_id: UUID | None = None
    created_at: datetime


class WebhookStatistics(BaseModel):
    period: StatsPeriod
    total_events: int
    delivered_events: int
    failed_events: int
    pending_events: int
    active_subscriptions: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        return _rate(self.delivered_events, self.total_events)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failure_rate(self) -> float:
        return _rate(self.failed_events, self.total_events)
