"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from budget_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from budget_engine.api.v1 import records, scenarios
from budget_engine.engine.ports import ConversionGateway, RecordStore
from budget_engine.engine.scenario import ScenarioEngineRegistry
from budget_engine.infrastructure.clients.conversion import ConversionClient
from budget_engine.infrastructure.database.models import Base
from budget_engine.infrastructure.database.repositories import SqlRecordStore
from budget_engine.infrastructure.database.session import SessionLocal, engine
from budget_engine.infrastructure.observability.logging import setup_logging
from budget_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app(store: Optional[RecordStore] = None, gateway: Optional[ConversionGateway] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    registry = ScenarioEngineRegistry(
        store if store is not None else SqlRecordStore(SessionLocal),
        gateway if gateway is not None else ConversionClient(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Default store: make sure the tables exist
        if store is None:
            Base.metadata.create_all(bind=engine)
        yield
        registry.close_all()

    app = FastAPI(
        title="Budget Engine",
        description="Multi-currency budget aggregation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.registry = registry

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

    # Register API routers; fixed paths before the /{entity} catch-alls
    app.include_router(scenarios.router, prefix="/v1", tags=["scenarios"])
    app.include_router(records.router, prefix="/v1", tags=["records"])

    return app


app = create_app()
