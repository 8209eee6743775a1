"""
procurement_api.app -- FastAPI application factory.

Responsibility:
    Builds the HTTP surface over a ``ServiceContainer``: routers, the
    typed-error translation and a correlation-id middleware that binds
    every log line of a request to one id.

Architecture position:
    Outermost layer.  Routers call container services and nothing else.

Usage:
    app = create_app()                      # settings from YAML + env
    app = create_app(container=container)   # tests
"""

from __future__ import annotations

import time

from fastapi import FastAPI, Request

from procurement_api.errors import install_error_handlers
from procurement_api.routers import ALL_ROUTERS
from procurement_config.settings import ProcurementSettings, load_settings
from procurement_kernel import __version__
from procurement_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
)
from procurement_kernel.domain.collaborators import Collaborators
from procurement_kernel.domain.values import new_id
from procurement_kernel.logging_config import LogContext, configure_logging, get_logger
from procurement_services.collaborators import in_memory_collaborators
from procurement_services.container import ServiceContainer

logger = get_logger("api.app")

CORRELATION_HEADER = "X-Correlation-Id"


def _sql_container(
    settings: ProcurementSettings,
    collaborators: Collaborators,
) -> ServiceContainer:
    engine = create_engine_from_url(settings.database_url)
    create_tables(engine)
    return ServiceContainer.sql(create_session_factory(engine), collaborators, settings)


def create_app(
    container: ServiceContainer | None = None,
    settings: ProcurementSettings | None = None,
    collaborators: Collaborators | None = None,
) -> FastAPI:
    if container is not None:
        settings = container.settings
    settings = settings or load_settings()
    configure_logging(level=settings.log_level)

    if container is None:
        container = _sql_container(settings, collaborators or in_memory_collaborators())

    app = FastAPI(title="Maritime Procurement Workflow", version=__version__)
    app.state.container = container
    install_error_handlers(app)

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or new_id()
        started = time.perf_counter()
        with LogContext.bind(correlation_id=correlation_id):
            response = await call_next(request)
            logger.info(
                "http_request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    for router in ALL_ROUTERS:
        app.include_router(router)

    logger.info(
        "api_app_created",
        extra={"config_id": settings.config_id, "routes": len(app.routes)},
    )
    return app
