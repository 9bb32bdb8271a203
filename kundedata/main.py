# ==== KUNDEDATA MAIN APPLICATION MODULE ==== #

"""
Main FastAPI application for Kundedata.

This module provides the FastAPI application with middleware, observability
and error handling for the lead-capture forms, email automation and
invoicing platform.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from kundedata import __version__
from kundedata.middleware.correlation import CorrelationMiddleware
from kundedata.middleware.session import SessionMiddleware
from kundedata.observability.logging import get_logger, init_logging
from kundedata.observability.metrics import init_metrics, metrics_router
from kundedata.observability.tracing import init_tracing
from kundedata.routes import (
    admin, auth, automations, cron, dashboard, email_templates, forms, invoices,
    leads, organization, public, recurring_invoices, upload
)
from kundedata.settings import settings
from kundedata.storage.db import check_database, close_database, init_database


logger = get_logger(__name__)


# ==== APPLICATION LIFECYCLE MANAGEMENT ==== #


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown operations.

    Args:
        app (FastAPI): FastAPI application instance

    Yields:
        None: Control back to FastAPI during application runtime
    """
    # --► STARTUP SEQUENCE
    init_logging(settings.LOG_LEVEL, settings.LOG_TO_FILES)
    init_tracing(settings.SERVICE_NAME)
    init_database()

    yield

    # --► SHUTDOWN SEQUENCE
    await close_database()


# ==== APPLICATION FACTORY ==== #


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="Kundedata",
        description="Lead-capture forms, email automation and invoicing",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.APP_ENV == "dev" else None,
        redoc_url="/redoc" if settings.APP_ENV == "dev" else None
    )

    # --► OBSERVABILITY INITIALIZATION
    init_metrics(app)

    # --► MIDDLEWARE STACK CONFIGURATION
    # CORS first; the session middleware ends up outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(SessionMiddleware)

    _register_health_endpoints(app)
    _register_info_endpoint(app)
    _register_routers(app)
    _register_exception_handlers(app)

    # --► OPENTELEMETRY INSTRUMENTATION
    FastAPIInstrumentor.instrument_app(app)

    return app


# ==== ENDPOINT REGISTRATION HELPERS ==== #


def _register_health_endpoints(app: FastAPI) -> None:
    """Liveness and readiness probes."""
    @app.get("/healthz", tags=["health"])
    async def health_check() -> dict:
        return {
            "status": "ok",
            "service": settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/readyz", tags=["health"])
    async def readiness_check() -> dict:
        return {
            "status": "ready",
            "service": settings.SERVICE_NAME,
            "environment": settings.APP_ENV
        }


def _register_info_endpoint(app: FastAPI) -> None:
    """
    Register application information endpoint with dependency status.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.get("/info", tags=["info"])
    async def app_info() -> dict:
        # --► DATABASE STATUS CHECK
        try:
            await check_database()
            database_status = "connected"
        except Exception as e:
            logger.warning("Database check failed", error=str(e))
            database_status = "disconnected"

        return {
            "service": settings.SERVICE_NAME,
            "version": __version__,
            "environment": settings.APP_ENV,
            "database_status": database_status,
            "email_provider": "resend" if settings.RESEND_API_KEY else "disabled",
            "storage": "supabase" if settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY else "disabled"
        }


def _register_routers(app: FastAPI) -> None:
    """
    Register all application routers with their prefixes and tags.

    Args:
        app (FastAPI): FastAPI application instance
    """
    app.include_router(metrics_router, prefix="", tags=["monitoring"])
    app.include_router(public.router, prefix="", tags=["public"])
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(organization.router, prefix="/api/organization", tags=["organization"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
    app.include_router(forms.router, prefix="/api/forms", tags=["forms"])
    app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
    app.include_router(email_templates.router, prefix="/api/email-templates", tags=["email-templates"])
    app.include_router(automations.router, prefix="/api/automations", tags=["automations"])
    app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])
    app.include_router(recurring_invoices.router, prefix="/api/recurring-invoices", tags=["recurring-invoices"])
    app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
    app.include_router(upload.router, prefix="/api/upload", tags=["upload"])
    app.include_router(dashboard.calendar_router, prefix="/api/calendar", tags=["calendar"])
    app.include_router(dashboard.dashboard_router, prefix="/api/dashboard", tags=["dashboard"])


# ==== EXCEPTION HANDLERS ==== #


def _first_message(errors) -> str:
    if not errors:
        return "Ugyldig forespørsel"
    message = str(errors[0].get("msg", "Ugyldig forespørsel"))
    return message.removeprefix("Value error, ")


def _register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Body and query validation errors as 400 with the first message."""
        errors = exc.errors()
        return JSONResponse(
            status_code=400,
            content={
                "detail": _first_message(errors),
                "errors": [
                    {"loc": list(error.get("loc", ())), "msg": _first_message([error])}
                    for error in errors
                ],
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Args:
            request (Request): HTTP request that caused the exception
            exc (Exception): Exception that occurred

        Returns:
            JSONResponse: Standardized error response
        """
        correlation_id = getattr(request.state, 'correlation_id', 'unknown')
        logger.exception(
            "Unhandled error",
            correlation_id=correlation_id,
            path=request.url.path,
            error_type=type(exc).__name__,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "En uventet feil oppstod",
                "correlation_id": correlation_id,
                "code": "INTERNAL_ERROR"
            }
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc) -> JSONResponse:
        """404 with the raised detail, or a generic one for unknown routes."""
        correlation_id = getattr(request.state, 'correlation_id', 'unknown')
        detail = getattr(exc, "detail", None)
        if not detail or detail == "Not Found":
            detail = "Ressursen ble ikke funnet"

        return JSONResponse(
            status_code=404,
            content={
                "error": "Not found",
                "detail": detail,
                "correlation_id": correlation_id,
                "code": "NOT_FOUND"
            }
        )

    @app.exception_handler(405)
    async def method_not_allowed_handler(request: Request, exc) -> JSONResponse:
        correlation_id = getattr(request.state, 'correlation_id', 'unknown')

        return JSONResponse(
            status_code=405,
            content={
                "error": "Method not allowed",
                "detail": "Metoden er ikke tillatt for denne ressursen",
                "correlation_id": correlation_id,
                "code": "METHOD_NOT_ALLOWED"
            }
        )


# ==== APPLICATION INSTANCE ==== #


# Create application instance for deployment
app = create_app()
