"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from pattern_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from pattern_engine.api.v1 import accuracy, analysis, forecast
from pattern_engine.infrastructure.observability.logging import setup_logging
from pattern_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Pattern Analytics Engine",
        description="Recurring bills, merchant baselines, anomalies and cash flow forecasts",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added = first executed, so every request has an ID before metrics run
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(analysis.router, prefix="/v1", tags=["analysis"])
    app.include_router(forecast.router, prefix="/v1", tags=["forecast"])
    app.include_router(accuracy.router, prefix="/v1", tags=["accuracy"])

    return app


app = create_app()
