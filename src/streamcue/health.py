"""HTTP health endpoint for the streamcue service."""

import time
from collections.abc import Callable
from typing import Any

from aiohttp import web

from .logger import get_logger

logger = get_logger(__name__)

StatusProvider = Callable[[], dict[str, Any]]


class HealthRunner:
    """Health endpoint runner with proper cleanup."""

    def __init__(self, runner: web.AppRunner, site: web.TCPSite):
        self.runner = runner
        self.site = site

    async def cleanup(self):
        """Clean up both site and runner."""
        try:
            await self.site.stop()
        except Exception as e:
            logger.warning("Site stop error (non-critical)", error=str(e))

        try:
            await self.runner.cleanup()
        except Exception as e:
            logger.warning("Runner cleanup error (non-critical)", error=str(e))


async def health_check(request: web.Request) -> web.Response:
    """Basic health plus whatever the status provider reports.

    A provider that raises turns the status into ``degraded`` instead of
    failing the request.
    """
    app = request.app

    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": app["service_name"],
        "timestamp": int(time.time()),
        "uptime_seconds": int(time.monotonic() - app["start_time"]),
    }

    provider: StatusProvider | None = app["status_provider"]
    if provider is not None:
        try:
            health_data.update(provider())
        except Exception as e:
            logger.error("Failed to collect component status", error=str(e))
            health_data["status"] = "degraded"
            health_data["status_error"] = str(e)

    return web.json_response(health_data)


def create_health_app(service_name: str, status_provider: StatusProvider | None = None) -> web.Application:
    app = web.Application()
    app["start_time"] = time.monotonic()
    app["service_name"] = service_name
    app["status_provider"] = status_provider
    app.router.add_get("/health", health_check)
    return app


async def start_health_server(
    port: int,
    service_name: str,
    host: str = "127.0.0.1",
    status_provider: StatusProvider | None = None,
) -> HealthRunner:
    """Serve ``/health`` and return a runner to clean it up with."""
    app = create_health_app(service_name, status_provider)

    # No access log; health probes would flood it
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info("Health check endpoint available", url=f"http://{host}:{port}/health")
    return HealthRunner(runner, site)
