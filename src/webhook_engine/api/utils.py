"""Helper utilities for API handlers."""
from __future__ import annotations

import json
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from aiohttp import web

# Re-export read_json from webhook_common so handlers import one module.
from webhook_common.aiohttp_app import read_json as read_json  # noqa: F401

from webhook_engine.core.exceptions import SubscriptionValidationError

TEnum = TypeVar("TEnum", bound=Enum)


def parse_uuid(value: str, label: str) -> UUID:
    try:
        uuid_str = value if isinstance(value, str) else str(value)
        return UUID(uuid_str)
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc


def optional_uuid(request: web.Request, name: str) -> UUID | None:
    value = request.rel_url.query.get(name)
    return parse_uuid(value, name) if value else None


def parse_enum(enum_cls: type[TEnum], value: str | None, label: str) -> TEnum | None:
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise web.HTTPBadRequest(text=f"Invalid {label}; expected one of: {allowed}") from exc


def parse_bool(value: str | None, label: str) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise web.HTTPBadRequest(text=f"Invalid {label}")


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    query = request.rel_url.query
    try:
        limit = int(query.get("limit", str(default_limit)))
        offset = int(query.get("offset", "0"))
    except ValueError as exc:
        raise web.HTTPBadRequest(text="limit and offset must be integers") from exc
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    if offset < 0:
        offset = 0
    return limit, offset


def paginated_response(
    items: list[Any],
    *,
    limit: int,
    offset: int,
    key: str,
    total: int,
) -> dict[str, Any]:
    page = offset // limit + 1 if limit else 1
    return {
        key: items,
        "total": total,
        "page": page,
        "page_size": limit,
    }


def validation_error(exc: SubscriptionValidationError) -> web.HTTPBadRequest:
    body = {"error": str(exc), "details": exc.errors}
    return web.HTTPBadRequest(text=json.dumps(body, default=str), content_type="application/json")
