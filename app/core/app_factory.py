from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
service wiring) so tests can build an app around their own services.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.adapters.db.session import init_db
from app.api.routes import admin_router, files_router, health_router
from app.core.config import settings
from app.core.container import ServiceContainer, build_container
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        services: Pre-built service container. When omitted, services are
            built from settings (Redis when ``REDIS_URL`` is set, otherwise an
            in-memory counter store; database from ``DATABASE_URL``).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    container = services or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(container.engine)
        yield
        container.engine.dispose()

    app = FastAPI(
        title="Regisvault Admission API",
        description=(
            "Admission control for the Regisvault document-management system: "
            "per-endpoint rate limiting backed by a shared counter store and "
            "department storage quotas enforced before uploads are recorded."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.services = container

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(files_router, prefix="/v1")
    app.include_router(admin_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, 429 responses)
    apply_openapi_customizations(app)

    return app
