"""
Health Server - HTTP endpoints for health checks and metrics scraping.

Serves a FastAPI app with uvicorn next to the framework:
- GET /         service status
- GET /healthz  liveness, 503 once the framework stopped
- GET /metrics  Prometheus exposition
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from prometheus_client.registry import CollectorRegistry

from framework import Framework, FrameworkState

logger = logging.getLogger(__name__)

SERVICE_NAME = "reconkit"

HEALTHY_STATES = (
    FrameworkState.NOT_BOOTED,
    FrameworkState.BOOTING,
    FrameworkState.RUNNING,
)


def create_app(
    framework: Framework, registry: Optional[CollectorRegistry] = None
) -> FastAPI:
    """
    Build the health app for a framework instance.

    Args:
        framework: The framework whose state is reported.
        registry: Prometheus registry to expose. Defaults to the global one.

    Returns:
        The FastAPI application.
    """
    app = FastAPI(title=SERVICE_NAME)
    registry = registry or REGISTRY

    @app.get("/")
    async def status():
        """Service status."""
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/healthz")
    async def healthz(response: Response):
        """Liveness check."""
        state = framework.state
        if state not in HEALTHY_STATES:
            response.status_code = 503
            return {"status": "unavailable", "state": state.value}
        return {"status": "ok", "state": state.value}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics."""
        return Response(
            content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST
        )

    return app


class HealthServer:
    """Runs the health app with uvicorn."""

    def __init__(
        self,
        framework: Framework,
        host: str = "0.0.0.0",
        port: int = 8080,
        log_level: str = "info",
    ):
        self.app = create_app(framework)
        self.host = host
        self.port = port
        self.log_level = log_level
        self.server: Optional[uvicorn.Server] = None

    async def start(self) -> None:
        """Start serving. Returns once the server shuts down."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting health server on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Stopping health server")
        if self.server:
            self.server.should_exit = True
