"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from purchase_sync.api.middleware import RequestIDMiddleware, MetricsMiddleware
from purchase_sync.api.v1 import categorized_orders, customers, products
from purchase_sync.infrastructure.database.session import init_db
from purchase_sync.infrastructure.observability.logging import setup_logging
from purchase_sync.config import settings

setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the categorized orders table before serving"""
    init_db()
    logging.info(
        "Purchase sync started",
        extra={"shop_base_url": settings.shop_base_url, "page_size": settings.page_size},
    )
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Purchase Sync",
        description="Order sync, categorization and next-purchase forecasting",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Last added runs first: request id is set before metrics are taken
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(categorized_orders.router, prefix="/v1", tags=["categorized-orders"])
    app.include_router(products.router, prefix="/v1", tags=["products"])
    app.include_router(customers.router, prefix="/v1", tags=["customers"])

    return app


app = create_app()
