"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from piggybank_connect.api.error_handlers import register_error_handlers
from piggybank_connect.api.middleware import RequestIDMiddleware, MetricsMiddleware
from piggybank_connect.api.v1 import accounts, balances, issuing, payouts, sandbox, webhooks
from piggybank_connect.infrastructure.observability.logging import setup_logging
from piggybank_connect.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PiggyBank Connect",
        description="Connected financial account lifecycle: onboarding, balances, cards and payouts",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(issuing.router, prefix="/v1", tags=["issuing"])
    app.include_router(balances.router, prefix="/v1", tags=["balances"])
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(sandbox.router, prefix="/v1", tags=["sandbox"])

    return app


app = create_app()
