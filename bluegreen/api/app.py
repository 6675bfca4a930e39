"""FastAPI Application Factory.

Creates the controller API with request tracing, structured error
handling and the deployment routes.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bluegreen.api.config import DEFAULT_API_CONFIG, APIConfig
from bluegreen.api.dependencies import get_orchestrator
from bluegreen.api.routes import deployments
from bluegreen.api_errors import register_exception_handlers
from bluegreen.deployment.config import HealthStatus
from bluegreen.deployment.orchestrator import DeploymentOrchestrator
from bluegreen.logging_config import LoggingConfig, LogStream, configure_logging
from bluegreen.logging_config.middleware import RequestTracingMiddleware
from bluegreen.settings import get_settings

logger = logging.getLogger(__name__)


# ── Lifespan (startup / shutdown) ────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize logging at startup."""
    configure_logging(LoggingConfig.from_settings(get_settings(), stream=LogStream.STDOUT))
    logger.info("Controller API starting up")
    yield
    logger.info("Controller API shutting down")


# ── App Factory ──────────────────────────────────────────────────────


def create_app(config: Optional[APIConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Middleware stack (outermost → innermost):
        RequestTracing → CORS → App
    """
    config = config or DEFAULT_API_CONFIG

    app = FastAPI(
        title=config.title,
        version=config.version,
        description=config.description,
        docs_url=config.docs_url,
        lifespan=lifespan,
    )

    # add_middleware prepends, so order here is innermost-first.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTracingMiddleware)

    register_exception_handlers(app)

    # ── Health check ─────────────────────────────────────────────

    @app.get("/health")
    def health(orchestrator: DeploymentOrchestrator = Depends(get_orchestrator)):
        active = orchestrator.registry.get_active()
        in_flight = orchestrator.in_flight
        return {
            "status": "ok" if active.health == HealthStatus.HEALTHY else "degraded",
            "version": config.version,
            "application": orchestrator.config.application,
            "active_slot": active.slot_id.value,
            "active_version": active.current_version,
            "in_flight": in_flight.run_id if in_flight else None,
        }

    # ── Route modules ────────────────────────────────────────────

    app.include_router(deployments.router, prefix=config.prefix)

    return app
