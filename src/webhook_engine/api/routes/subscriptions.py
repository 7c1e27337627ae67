"""Webhook subscription endpoints."""
from __future__ import annotations

from uuid import UUID

from aiohttp import web

from webhook_engine.api.utils import (
    paginated_response,
    pagination_params,
    parse_bool,
    parse_uuid,
    read_json,
    validation_error,
)
from webhook_engine.core.exceptions import NotFoundError, SubscriptionValidationError
from webhook_engine.services.dependencies import (
    get_event_recorder,
    get_subscription_registry,
    require_store_id,
)

routes = web.RouteTableDef()


def _subscription_id(request: web.Request) -> UUID:
    return parse_uuid(request.match_info["subscription_id"], "subscription_id")


@routes.get("/api/v1/subscriptions")
async def list_subscriptions(request: web.Request):
    store_id = require_store_id(request)
    active = parse_bool(request.rel_url.query.get("active"), "active")
    limit, offset = pagination_params(request)
    registry = await get_subscription_registry(request)
    items, total = await registry.list_subscriptions(
        store_id, active=active, limit=limit, offset=offset
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="subscriptions",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/subscriptions")
async def create_subscription(request: web.Request):
    store_id = require_store_id(request)
    body = await read_json(request)
    registry = await get_subscription_registry(request)
    try:
        created = await registry.create(store_id, body)
    except SubscriptionValidationError as exc:
        raise validation_error(exc) from exc
    return web.json_response(created.to_response(), status=201)


@routes.get("/api/v1/subscriptions/{subscription_id}")
async def get_subscription(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    registry = await get_subscription_registry(request)
    try:
        subscription = await registry.get(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(subscription.model_dump(mode="json"))


@routes.patch("/api/v1/subscriptions/{subscription_id}")
async def update_subscription(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    body = await read_json(request)
    registry = await get_subscription_registry(request)
    try:
        subscription = await registry.update(store_id, subscription_id, body)
    except SubscriptionValidationError as exc:
        raise validation_error(exc) from exc
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(subscription.model_dump(mode="json"))


@routes.delete("/api/v1/subscriptions/{subscription_id}")
async def delete_subscription(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    registry = await get_subscription_registry(request)
    try:
        await registry.delete(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.Response(status=204)


@routes.post("/api/v1/subscriptions/{subscription_id}/activate")
async def activate_subscription(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    registry = await get_subscription_registry(request)
    try:
        subscription = await registry.activate(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(subscription.model_dump(mode="json"))


@routes.post("/api/v1/subscriptions/{subscription_id}/deactivate")
async def deactivate_subscription(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    registry = await get_subscription_registry(request)
    try:
        subscription = await registry.deactivate(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(subscription.model_dump(mode="json"))


@routes.post("/api/v1/subscriptions/{subscription_id}/rotate-secret")
async def rotate_secret(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    registry = await get_subscription_registry(request)
    try:
        secret = await registry.rotate_secret(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response({"id": str(subscription_id), "secret": secret})


@routes.post("/api/v1/subscriptions/{subscription_id}/test")
async def send_test_event(request: web.Request):
    store_id = require_store_id(request)
    subscription_id = _subscription_id(request)
    recorder = await get_event_recorder(request)
    try:
        event = await recorder.send_test_event(store_id, subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(event.model_dump(mode="json"), status=202)
