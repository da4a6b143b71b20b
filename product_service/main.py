"""
Main FastAPI application.
Brings together the catalog API, storage and event distribution.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from product_service import __version__
from product_service.api import api_router
from product_service.core.config import Settings, get_settings, settings
from product_service.core.database import check_database_connection, engine, init_db
from product_service.core.exceptions import ProductServiceError
from product_service.core.logging import setup_logging
from product_service.core.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL
from product_service.core.tracing import start_tracing
from product_service.messaging.service import MessagingService

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    messaging: Optional[MessagingService] = None,
    db_engine: Optional[Engine] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to use, defaults to the process-wide settings
        messaging: Pre-built messaging service (tests inject one backed by a fake broker)
        db_engine: Engine used for table creation and the startup check

    Returns:
        FastAPI: Configured application
    """
    config = config or get_settings()
    db_engine = db_engine or engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.log_level)
        if config.tracing_enabled:
            start_tracing()

        init_db(db_engine)
        if check_database_connection(db_engine):
            logger.info("Database connection verified successfully")
        else:
            logger.warning("Database connection check failed")

        await app.state.messaging.start()
        logger.info(f"{config.app_name} started (messaging={app.state.messaging.status})")
        try:
            yield
        finally:
            await app.state.messaging.stop()
            logger.info(f"{config.app_name} stopped")

    app = FastAPI(
        title=config.app_name,
        description="Product catalog API with RabbitMQ event distribution",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.messaging = messaging or MessagingService(config)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing and metrics middleware
    @app.middleware("http")
    async def record_request(request: Request, call_next):
        """Log each request and record Prometheus request metrics."""
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        # Label by route template so ids do not explode cardinality
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        labels = {"method": request.method, "path": path, "status": str(response.status_code)}
        HTTP_REQUESTS_TOTAL.labels(**labels).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(process_time)

        response.headers["X-Process-Time"] = str(process_time)
        client = request.client.host if request.client else "-"
        logger.info(
            f"{client} {request.method} {request.url.path} -> {response.status_code} "
            f"({process_time * 1000:.1f} ms)"
        )
        return response

    # Global exception handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": "Validation error",
                "detail": exc.errors(),
                "error_type": "validation_error",
            },
        )

    @app.exception_handler(ProductServiceError)
    async def product_service_exception_handler(request: Request, exc: ProductServiceError):
        """Handle catalog-specific exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail, "error_type": "catalog_error"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail, "error_type": "http_error"},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "error_type": "internal_error",
            },
        )

    # Include API routes
    app.include_router(api_router)

    @app.get("/", tags=["root"])
    async def root():
        """
        API information endpoint.

        Returns:
            dict: Application information and available endpoints
        """
        return {
            "message": config.app_name,
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/health",
            "api": "/api",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "product_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info",
    )
