"""Jobcraft API - FastAPI application entrypoint."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import AppConfig, load_config, log_config_snapshot
from app.correlation import CorrelationIdMiddleware, RequestIdLogFilter
from app.errors import register_exception_handlers
from app.routers import account
from app.routers import billing
from app.routers import generate
from auth.identity import IdentityVerifier
from billing.service import BillingReconciler
from billing.stripe_client import StripeGateway
from generation.providers import get_provider
from generation.service import GenerationService
from ledger.service import Ledger
from ledger.store import AccountStore
from persistence.db import Database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests exceeding size limit to prevent payload bombs."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            return JSONResponse(
                status_code=413,
                content={"detail": "Request entity too large"},
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


def create_app(
    config: Optional[AppConfig] = None,
    stripe_gateway: Optional[StripeGateway] = None,
    ai_transport=None,
) -> FastAPI:
    """
    Build the application and its services from one AppConfig.

    Args:
        config: Configuration (loaded from the environment if omitted)
        stripe_gateway: Override the Stripe gateway (tests)
        ai_transport: httpx transport for the AI provider (tests)
    """
    config = config or load_config()
    log_config_snapshot(config)

    database = Database(config.db_path, timeout=config.store_timeout_seconds)
    ledger = Ledger(AccountStore(database), cancellation_policy=config.cancellation_usage_policy)

    if stripe_gateway is None and config.billing_enabled:
        stripe_gateway = StripeGateway.from_config(config)
    if stripe_gateway is None:
        logger.warning("STRIPE_SECRET_KEY not set. Billing disabled.")

    reconciler = BillingReconciler(
        ledger,
        stripe_gateway,
        success_url=config.checkout_success_url,
        cancel_url=config.checkout_cancel_url,
    )
    generation_service = GenerationService(ledger, get_provider(config, transport=ai_transport))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize database on startup, close this thread's connection on shutdown."""
        database.init_db()
        yield
        database.close_db()

    started_at = datetime.now(timezone.utc)

    app = FastAPI(
        title="Jobcraft API",
        description="Job application content generation with metered usage tiers",
        version=config.service_version,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.database = database
    app.state.ledger = ledger
    app.state.reconciler = reconciler
    app.state.generation_service = generation_service
    app.state.identity_verifier = IdentityVerifier(
        config.auth_jwt_secret,
        algorithm=config.auth_jwt_algorithm,
        audience=config.auth_jwt_audience,
        issuer=config.auth_jwt_issuer,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware stack (order matters - the last one added runs first)
    # 1. RequestSizeLimit: Rejects oversized requests early
    # 2. SecurityHeaders: Adds security headers to responses
    # 3. CorrelationId: Sets the request ID for handlers and logs, adds X-Request-Id
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=config.max_request_size_bytes)

    register_exception_handlers(app)

    app.include_router(account.router)
    app.include_router(billing.router)
    app.include_router(generate.router)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "API is running"

    @app.get("/health")
    async def health():
        """Health check with service observability."""
        return {
            "status": "healthy",
            "service": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "billing_enabled": stripe_gateway is not None,
            "ai_provider": config.ai_provider,
            "started_at": started_at.isoformat(),
        }

    return app


app = create_app()
