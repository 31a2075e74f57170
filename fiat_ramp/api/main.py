"""
Main FastAPI application.

Onramper webhook relay with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fiat_ramp import __version__
from fiat_ramp.config import Settings, get_settings
from fiat_ramp.core.identity import IdentitySync
from fiat_ramp.core.reconciliation import TransactionReconciler
from fiat_ramp.core.webhook_processor import WebhookProcessor
from fiat_ramp.database import (
    LedgerStore,
    SQLAlchemyLedgerStore,
    close_db,
    get_session_factory,
    init_db,
)
from fiat_ramp.integrations import OnramperClient
from fiat_ramp.monitoring import HealthCheck, setup_logging

from .routes import monitoring_router, transaction_router, webhook_router

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    ledger_store: Optional[LedgerStore] = None,
    onramper_client: Optional[OnramperClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        ledger_store: Ledger store; a database-backed store is created from
            ``settings.database_url`` when omitted
        onramper_client: Onramper API client

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    session_factory = None
    if ledger_store is None:
        session_factory = get_session_factory(settings)
        ledger_store = SQLAlchemyLedgerStore(session_factory)

    if onramper_client is None:
        onramper_client = OnramperClient(
            base_url=settings.onramper_base_url,
            api_key=settings.onramper_api_key,
            timeout=settings.onramper_timeout_seconds,
        )

    reconciler = TransactionReconciler(ledger_store, store_timeout=settings.store_timeout_seconds)
    identity_sync = IdentitySync(ledger_store, store_timeout=settings.store_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
        )

        if session_factory is not None:
            try:
                await init_db(settings)
                logger.info("database_initialized")
            except Exception as e:
                logger.error("database_initialization_failed", error=str(e))
                raise

        yield

        logger.info("application_shutdown")
        await onramper_client.close()
        if session_factory is not None:
            try:
                await close_db()
                logger.info("database_connections_closed")
            except Exception as e:
                logger.error("database_shutdown_error", error=str(e))

    app = FastAPI(
        title="Fiat Ramp Relay",
        description=(
            "Onramper webhook ingestion and KYC status reconciliation. "
            "Features: HMAC-verified webhooks, idempotent transaction ledger, "
            "monotonic verification state and comprehensive monitoring."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.ledger_store = ledger_store
    app.state.onramper_client = onramper_client
    app.state.reconciler = reconciler
    app.state.identity_sync = identity_sync
    app.state.webhook_processor = WebhookProcessor(
        webhook_secret=settings.onramper_webhook_secret,
        reconciler=reconciler,
        identity_sync=identity_sync,
    )
    app.state.health_check = HealthCheck(session_factory)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add request ID and timing to every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Render HTTP errors in the ErrorResponse shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Answer malformed request bodies with 400."""
        logger.warning(
            "request_validation_failed", path=request.url.path, errors=jsonable_errors(exc)
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(webhook_router)
    app.include_router(transaction_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health/ready",
            "metrics": "/metrics",
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Reduce validation errors to their location and message."""
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


def main() -> None:
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "fiat_ramp.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
    )


if __name__ == "__main__":
    main()
