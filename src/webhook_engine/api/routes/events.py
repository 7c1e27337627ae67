"""Webhook event endpoints: recording, inspection, cancel and manual retry."""
from __future__ import annotations

from aiohttp import web
from pydantic import ValidationError

from webhook_engine.api.utils import (
    optional_uuid,
    paginated_response,
    pagination_params,
    parse_enum,
    parse_uuid,
    read_json,
)
from webhook_engine.core.exceptions import InvalidStatusTransitionError, NotFoundError
from webhook_engine.domain.dto import EventRecordDTO
from webhook_engine.domain.enums import EventStatus
from webhook_engine.services.dependencies import (
    get_event_recorder,
    get_event_service,
    get_retry_scheduler,
    require_store_id,
)

routes = web.RouteTableDef()


@routes.post("/api/v1/events")
async def record_event(request: web.Request):
    store_id = require_store_id(request)
    body = await read_json(request)
    try:
        dto = EventRecordDTO.model_validate(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(text=exc.json(), content_type="application/json") from exc
    recorder = await get_event_recorder(request)
    events = await recorder.record(store_id, dto.event_type, dto.payload)
    return web.json_response(
        {"events": [e.model_dump(mode="json") for e in events], "total": len(events)},
        status=202,
    )


@routes.get("/api/v1/events")
async def list_events(request: web.Request):
    store_id = require_store_id(request)
    query = request.rel_url.query
    status = parse_enum(EventStatus, query.get("status"), "status")
    subscription_id = optional_uuid(request, "subscription_id")
    limit, offset = pagination_params(request)
    service = await get_event_service(request)
    items, total = await service.list_events(
        store_id, status=status, subscription_id=subscription_id, limit=limit, offset=offset
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="events",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/events/{event_id}")
async def get_event(request: web.Request):
    store_id = require_store_id(request)
    event_pk = parse_uuid(request.match_info["event_id"], "event_id")
    service = await get_event_service(request)
    try:
        event = await service.get(store_id, event_pk)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(event.model_dump(mode="json"))


@routes.get("/api/v1/events/{event_id}/deliveries")
async def list_event_deliveries(request: web.Request):
    store_id = require_store_id(request)
    event_pk = parse_uuid(request.match_info["event_id"], "event_id")
    service = await get_event_service(request)
    try:
        deliveries = await service.list_deliveries(store_id, event_pk)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(
        {"deliveries": [d.model_dump(mode="json") for d in deliveries], "total": len(deliveries)}
    )


@routes.post("/api/v1/events/{event_id}/cancel")
async def cancel_event(request: web.Request):
    store_id = require_store_id(request)
    event_pk = parse_uuid(request.match_info["event_id"], "event_id")
    reason = None
    if request.can_read_body:
        reason = (await read_json(request)).get("reason")
    scheduler = await get_retry_scheduler(request)
    try:
        event = await scheduler.cancel(store_id, event_pk, reason=reason)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    return web.json_response(event.model_dump(mode="json"))


@routes.post("/api/v1/events/{event_id}/reset-retries")
async def reset_event_retries(request: web.Request):
    store_id = require_store_id(request)
    event_pk = parse_uuid(request.match_info["event_id"], "event_id")
    scheduler = await get_retry_scheduler(request)
    try:
        event = await scheduler.reset_retries(store_id, event_pk)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    return web.json_response(event.model_dump(mode="json"))
