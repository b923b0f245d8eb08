"""Main FastAPI application for Pressroom media-query ingestion."""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .config.settings import get_settings
from .database.engine import close_database_engine, init_models
from .exceptions import (
    JobNotFoundError,
    QueryNotFoundError,
    ReviewerRequiredError,
    WebhookUnauthorizedError,
    WebhookValidationError,
)
from .middleware.logging import LoggingMiddleware
from .middleware.tenant_isolation import TenantIsolationMiddleware
from .routers import health, ingestion, review


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structlog on top of stdlib logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper(), logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


_settings = get_settings()
configure_logging(_settings.monitoring.log_level, _settings.monitoring.log_format)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Pressroom application")
    settings = get_settings()
    logger.info("Application settings loaded",
                environment=settings.environment,
                log_level=settings.monitoring.log_level,
                llm_provider=settings.llm.provider)

    if settings.database.create_all:
        await init_models()
        logger.info("Database tables ensured")

    yield

    logger.info("Shutting down Pressroom application")
    await close_database_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pressroom",
        description="Media-query email ingestion for PR agencies",
        version="0.1.0",
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it runs first and the trace id is set before tenant checks.
    app.add_middleware(TenantIsolationMiddleware,
                       default_tenant_id=settings.ingestion.default_agency_id)
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(WebhookValidationError)
    async def validation_handler(request: Request, exc: WebhookValidationError):
        """Handle webhook payloads missing required fields."""
        logger.warning("Webhook validation failed",
                       missing_fields=exc.missing_fields,
                       trace_id=exc.trace_id)
        return JSONResponse(
            status_code=400,
            content=exc.to_dict()
        )

    @app.exception_handler(WebhookUnauthorizedError)
    async def unauthorized_handler(request: Request, exc: WebhookUnauthorizedError):
        return JSONResponse(
            status_code=401,
            content=exc.to_dict()
        )

    @app.exception_handler(ReviewerRequiredError)
    async def reviewer_required_handler(request: Request, exc: ReviewerRequiredError):
        logger.warning("Review action without reviewer", path=request.url.path, trace_id=exc.trace_id)
        return JSONResponse(
            status_code=401,
            content=exc.to_dict()
        )

    @app.exception_handler(QueryNotFoundError)
    async def query_not_found_handler(request: Request, exc: QueryNotFoundError):
        """Handle unknown parsed queries."""
        logger.info("Parsed query not found",
                    query_id=exc.query_id,
                    tenant_id=exc.tenant_id)
        return JSONResponse(
            status_code=404,
            content=exc.to_dict()
        )

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError):
        """Handle unknown ingestion jobs."""
        logger.info("Ingestion job not found",
                    job_id=exc.job_id,
                    tenant_id=exc.tenant_id)
        return JSONResponse(
            status_code=404,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error("Unhandled exception",
                     exc_info=exc,
                     path=request.url.path,
                     method=request.method)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(ingestion.router, prefix="/ingest", tags=["ingestion"])
    app.include_router(review.router, prefix="/ingest", tags=["review"])

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint."""
        return {
            "message": "Pressroom",
            "version": "0.1.0",
            "status": "running"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pressroom.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.monitoring.log_level.lower()
    )
