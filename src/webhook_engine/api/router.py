"""API router composition for aiohttp."""
from __future__ import annotations

from aiohttp import web

from webhook_engine.api.routes import audit, events, stats, subscriptions

ROUTE_MODULES = [
    subscriptions,
    events,
    stats,
    audit,
]


def setup_routes(app: web.Application) -> None:
    """Attach domain routes to the aiohttp application."""
    for module in ROUTE_MODULES:
        app.add_routes(module.routes)
