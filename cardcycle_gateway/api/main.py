"""FastAPI application factory"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from cardcycle_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from cardcycle_gateway.api.v1 import cycles, sync, webhooks
from cardcycle_gateway.infrastructure.clients.aggregator import AggregatorClient
from cardcycle_gateway.infrastructure.database.locks import AccountLockManager
from cardcycle_gateway.infrastructure.database.session import Database
from cardcycle_gateway.infrastructure.observability.logging import setup_logging
from cardcycle_gateway.services.sync import AccountSyncService
from cardcycle_gateway.services.webhooks import WebhookDeduplicator
from cardcycle_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def init_state(app: FastAPI, database: Database | None = None, client: AggregatorClient | None = None) -> None:
    """Wire shared collaborators onto app.state; one set per process"""
    app.state.database = database or Database()
    app.state.aggregator_client = client or AggregatorClient()
    app.state.account_locks = AccountLockManager()
    app.state.webhook_deduplicator = WebhookDeduplicator()
    app.state.sync_service = AccountSyncService(
        app.state.database.session,
        app.state.aggregator_client,
        app.state.account_locks,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "database", None) is None:
        init_state(app)
    yield
    await app.state.aggregator_client.aclose()
    app.state.database.dispose()


def create_app(database: Database | None = None, client: AggregatorClient | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="CardCycle Gateway",
        description="Billing cycle derivation and repair service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if database is not None:
        init_state(app, database, client)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(cycles.router, prefix="/v1", tags=["billing-cycles"])
    app.include_router(sync.router, prefix="/v1", tags=["sync"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])

    return app


app = create_app()
