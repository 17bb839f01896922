"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from muaythai_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from muaythai_gateway.api.v1 import affiliate, cron, uploads, webhooks
from muaythai_gateway.infrastructure.observability.logging import setup_logging
from muaythai_gateway.config import settings
from muaythai_gateway.domain.exceptions import CronAuthenticationError

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Muay Thai Marketplace Gateway",
        description="Payment webhooks and scheduled maintenance tasks",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(CronAuthenticationError, cron.cron_auth_error_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])
    app.include_router(cron.router, prefix="/api", tags=["cron"])
    app.include_router(affiliate.router, prefix="/api", tags=["affiliate"])
    app.include_router(uploads.router, prefix="/api", tags=["uploads"])

    return app


app = create_app()
