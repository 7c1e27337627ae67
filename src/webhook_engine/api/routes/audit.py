"""Audit log browsing."""
from __future__ import annotations

from aiohttp import web

from webhook_engine.api.utils import optional_uuid, paginated_response, pagination_params, parse_enum
from webhook_engine.domain.enums import AuditLevel
from webhook_engine.services.dependencies import get_audit_log, require_store_id

routes = web.RouteTableDef()


@routes.get("/api/v1/audit-logs")
async def list_audit_logs(request: web.Request):
    """``level`` is a minimum severity: ``warning`` also returns error and critical."""
    store_id = require_store_id(request)
    level = parse_enum(AuditLevel, request.rel_url.query.get("level"), "level")
    limit, offset = pagination_params(request)
    audit = await get_audit_log(request)
    items, total = await audit.list_entries(
        store_id,
        min_level=level,
        subscription_id=optional_uuid(request, "subscription_id"),
        event_id=optional_uuid(request, "event_id"),
        limit=limit,
        offset=offset,
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="audit_logs",
        total=total,
    )
    return web.json_response(payload)
