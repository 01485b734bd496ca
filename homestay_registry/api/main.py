"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from homestay_registry.api.errors import register_exception_handlers
from homestay_registry.api.middleware import AccessLogMiddleware, RequestIDMiddleware
from homestay_registry.api.v1 import (
    admin,
    analytics,
    applications,
    auth,
    da,
    dtdo,
    fees,
    himkosh,
    notifications,
    payments,
    public,
)
from homestay_registry.infrastructure.observability.logging import setup_logging
from homestay_registry.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Homestay Registry",
        description="Homestay registration workflow, fees and payments service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, "environment": settings.environment}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(applications.router, prefix="/v1", tags=["applications"])
    app.include_router(da.router, prefix="/v1", tags=["dealing-assistant"])
    app.include_router(dtdo.router, prefix="/v1", tags=["dtdo"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(himkosh.router, prefix="/v1", tags=["himkosh"])
    app.include_router(fees.router, prefix="/v1", tags=["fees"])
    app.include_router(notifications.router, prefix="/v1", tags=["notifications"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])
    app.include_router(auth.router, prefix="/v1", tags=["auth"])
    app.include_router(public.router, prefix="/v1", tags=["public"])
    app.include_router(analytics.router, prefix="/v1", tags=["analytics"])

    return app


app = create_app()
