"""
FastAPI application entry point.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tempmail.config import Settings, get_settings
from tempmail.integrations.mailtm_client import MailTmClient
from tempmail.routes import admin, domains, email, health
from tempmail.services.mailbox_service import MailboxService
from tempmail.services.session_store import SessionStore
from tempmail.utils.errors import AppError
from tempmail.utils.logger import get_logger, setup_logging
from tempmail.utils.rate_limit import build_limiters, rate_limit

logger = get_logger(__name__)


def _validation_messages(exc: RequestValidationError) -> list:
    messages = []
    for error in exc.errors():
        field = error.get("loc", ["?"])[-1]
        if field == "address":
            messages.append("Valid email address is required")
        elif field == "password":
            messages.append("Password must be at least 6 characters long")
        else:
            messages.append(f"{field}: {error.get('msg', 'invalid value')}")
    return messages


def create_app(
    settings: Optional[Settings] = None,
    mailtm_client: Optional[MailTmClient] = None,
) -> FastAPI:
    """
    Build the application.

    The session store and provider client are created here once and
    shared with every route through app.state.

    Args:
        settings: Settings to use (defaults to environment settings)
        mailtm_client: Provider client (tests pass one on MockTransport)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting TempMail API (Mail.tm base: {settings.mailtm_base_url})")
        app.state.session_store.start_sweeper()

        yield

        logger.info("Shutting down TempMail API...")
        await app.state.session_store.stop_sweeper()
        await app.state.mailtm_client.aclose()

    app = FastAPI(
        title="TempMail",
        description="Temporary email API backed by Mail.tm",
        version=health.VERSION,
        lifespan=lifespan,
    )

    client = mailtm_client or MailTmClient(
        base_url=settings.mailtm_base_url,
        timeout=settings.mailtm_timeout_seconds,
    )
    store = SessionStore(
        client,
        idle_seconds=settings.session_idle_seconds,
        sweep_interval_seconds=settings.session_sweep_interval_seconds,
    )
    app.state.settings = settings
    app.state.mailtm_client = client
    app.state.session_store = store
    app.state.mailbox_service = MailboxService(store, client)
    app.state.limiters = build_limiters(settings) if settings.rate_limit_enabled else {}
    app.state.started_at = time.monotonic()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Validation failed",
                "code": "VALIDATION_FAILED",
                "details": _validation_messages(exc),
            },
        )

    # Include routers
    limited = [Depends(rate_limit("general"))]
    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(email.router, prefix="/api/email", tags=["Email"], dependencies=limited)
    app.include_router(domains.router, prefix="/api", tags=["Domains"], dependencies=limited)
    app.include_router(admin.router, prefix="/api", tags=["Admin"])

    @app.get("/")
    async def root():
        """Root endpoint - points to docs."""
        return {
            "message": "TempMail API",
            "docs": "/docs",
            "health": "/api/health",
        }

    return app


# Setup logging
setup_logging(get_settings().debug)

app = create_app()
