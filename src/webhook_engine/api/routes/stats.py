"""Per-store delivery statistics."""
from __future__ import annotations

from aiohttp import web

from webhook_engine.api.utils import parse_enum
from webhook_engine.domain.enums import StatsPeriod
from webhook_engine.services.dependencies import get_stats_tracker, require_store_id

routes = web.RouteTableDef()


@routes.get("/api/v1/stats")
async def get_statistics(request: web.Request):
    store_id = require_store_id(request)
    period = parse_enum(StatsPeriod, request.rel_url.query.get("period"), "period")
    tracker = await get_stats_tracker(request)
    stats = await tracker.statistics(store_id, period or StatsPeriod.LAST_7_DAYS)
    return web.json_response(stats.model_dump(mode="json"))
