"""
HTTP server for the watcher's /metrics and /healthz endpoints.

/metrics serves generate_latest(registry); /healthz serves the outcome of the
most recent poll cycle as JSON.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import orjson
from aiohttp import web
from prometheus_client import generate_latest

if TYPE_CHECKING:
    from prometheus_client.registry import CollectorRegistry

    from releasewatch.delivery.reconciler import CycleReport

logger = logging.getLogger(__name__)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

HealthFn = Callable[[], dict[str, Any]]


def cycle_health(report: CycleReport | None) -> dict[str, Any]:
    """Health document for /healthz built from the last cycle report."""
    if report is None:
        return {"status": "starting"}
    return {
        "status": "ok" if report.ok else "degraded",
        "last_cycle_at": report.started_at.isoformat(),
        "last_cycle_duration_s": round(report.duration_s, 3),
        "last_error": report.error,
        "created": report.created,
        "updated": report.updated,
        "failed": report.failed,
    }


def _make_metrics_handler(registry: CollectorRegistry) -> _Handler:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(registry),
            content_type="text/plain; version=0.0.4",
            charset="utf-8",
        )

    return handler


def _make_healthz_handler(health_fn: HealthFn | None = None) -> _Handler:
    """Create GET /healthz handler.

    Args:
        health_fn: Optional callback returning the health dict.
            If None, returns a minimal {"status": "ok"} response.
    """

    async def handler(request: web.Request) -> web.Response:
        info = health_fn() if health_fn is not None else {"status": "ok"}
        return web.Response(body=orjson.dumps(info), content_type="application/json")

    return handler


def create_metrics_app(
    registry: CollectorRegistry,
    *,
    health_fn: HealthFn | None = None,
) -> web.Application:
    """Create aiohttp Application with /metrics and /healthz routes."""
    app = web.Application()
    app.router.add_get("/metrics", _make_metrics_handler(registry))
    app.router.add_get("/healthz", _make_healthz_handler(health_fn))
    return app


async def start_metrics_server(
    registry: CollectorRegistry,
    host: str = "0.0.0.0",
    port: int = 9090,
    *,
    health_fn: HealthFn | None = None,
) -> web.AppRunner:
    """
    Start the metrics HTTP server.

    Returns:
        AppRunner (call stop_metrics_server() on shutdown).
    """
    app = create_metrics_app(registry, health_fn=health_fn)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Metrics server started on http://%s:%d/metrics", host, port)
    return runner


async def stop_metrics_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Metrics server stopped")
