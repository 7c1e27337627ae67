"""Shared infrastructure: trace middleware, log escaping, JSON body parsing."""
from __future__ import annotations

import uuid

from aiohttp import web

from webhook_common.aiohttp_app import read_json
from webhook_common.logging_config import single_line_processor
from webhook_common.middleware.trace import (
    REQUEST_ID_HEADER,
    TRACE_ID_HEADER,
    create_trace_middleware,
)


def _app() -> web.Application:
    async def echo(request: web.Request) -> web.Response:
        return web.json_response(await read_json(request))

    async def trace(request: web.Request) -> web.Response:
        return web.json_response({"trace_id": request["trace_id"]})

    app = web.Application(middlewares=[create_trace_middleware("webhook-engine")])
    app.router.add_post("/echo", echo)
    app.router.add_get("/trace", trace)
    return app


async def test_trace_id_is_propagated(aiohttp_client):
    client = await aiohttp_client(_app())
    trace_id = str(uuid.uuid4())

    resp = await client.get("/trace", headers={TRACE_ID_HEADER: trace_id})

    assert resp.headers[TRACE_ID_HEADER] == trace_id
    assert (await resp.json())["trace_id"] == trace_id
    assert REQUEST_ID_HEADER in resp.headers


async def test_invalid_trace_id_is_replaced(aiohttp_client):
    client = await aiohttp_client(_app())

    resp = await client.get("/trace", headers={TRACE_ID_HEADER: "garbage"})

    uuid.UUID(resp.headers[TRACE_ID_HEADER])


async def test_read_json_rejects_invalid_bodies(aiohttp_client):
    client = await aiohttp_client(_app())

    assert (await client.post("/echo", data="{not json")).status == 400
    assert (await client.post("/echo", json=[1, 2])).status == 400
    resp = await client.post("/echo", json={"a": 1})
    assert await resp.json() == {"a": 1}


def test_single_line_processor_escapes_nested_values():
    event = single_line_processor(
        None,
        "info",
        {"event": "line1\nline2", "items": ["a\tb", 3], "ctx": {"k": "x\r\ny"}},
    )
    assert event == {"event": "line1\\nline2", "items": ["a\\tb", 3], "ctx": {"k": "x\\r\\ny"}}
