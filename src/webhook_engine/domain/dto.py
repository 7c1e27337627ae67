"""Input models for subscription management and event recording."""
from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webhook_engine.domain.headers import RESERVED_HEADERS

MAX_TIMEOUT_SECONDS = 300


def _validate_url(value: str) -> str:
    value = value.strip()
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError("url must be an absolute http(s) URL with a host")
    if parts.username or parts.password:
        raise ValueError("url must not embed credentials")
    return value


def _normalize_event_types(values: list[str]) -> list[str]:
    cleaned = [v.strip() for v in values if v and v.strip()]
    cleaned = list(dict.fromkeys(cleaned))
    if not cleaned:
        raise ValueError("event_types must contain at least one event type")
    return cleaned


def _validate_headers(headers: dict[str, str]) -> dict[str, str]:
    clashing = sorted(name for name in headers if name.lower() in RESERVED_HEADERS)
    if clashing:
        raise ValueError(f"custom_headers may not override reserved headers: {', '.join(clashing)}")
    for name, value in headers.items():
        if not name.strip() or "\n" in name or "\n" in value or "\r" in value:
            raise ValueError(f"invalid custom header {name!r}")
    return headers


class SubscriptionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    url: str
    description: str | None = None
    event_types: list[str] = Field(min_length=1)
    is_active: bool = True
    timeout_seconds: int = Field(default=30, gt=0, le=MAX_TIMEOUT_SECONDS)
    max_retries: int = Field(default=3, ge=0, le=50)
    retry_delay_seconds: int = Field(default=60, gt=0)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        return _validate_url(value)

    @field_validator("event_types")
    @classmethod
    def check_event_types(cls, value: list[str]) -> list[str]:
        return _normalize_event_types(value)

    @field_validator("custom_headers")
    @classmethod
    def check_headers(cls, value: dict[str, str]) -> dict[str, str]:
        return _validate_headers(value)


class SubscriptionUpdate(BaseModel):
    """Partial update; only fields present in the input are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = None
    description: str | None = None
    event_types: list[str] | None = None
    is_active: bool | None = None
    timeout_seconds: int | None = Field(default=None, gt=0, le=MAX_TIMEOUT_SECONDS)
    max_retries: int | None = Field(default=None, ge=0, le=50)
    retry_delay_seconds: int | None = Field(default=None, gt=0)
    custom_headers: dict[str, str] | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str | None) -> str | None:
        return None if value is None else _validate_url(value)

    @field_validator("event_types")
    @classmethod
    def check_event_types(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _normalize_event_types(value)

    @field_validator("custom_headers")
    @classmethod
    def check_headers(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        return None if value is None else _validate_headers(value)

    def changes(self) -> dict[str, Any]:
        # description is the only column that may be cleared with null
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }


class EventRecordDTO(BaseModel):
    event_type: str = Field(min_length=1, max_length=255)
    payload: dict[str, Any] | list[Any]

    @field_validator("event_type")
    @classmethod
    def strip_event_type(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("event_type must not be blank")
        return value
