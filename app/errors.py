# app/errors.py
"""
HTTP translation of domain errors.

Error classes live next to the code that raises them; this module maps
each one to a status code and a JSON body of the form
{"error", "detail", "code"} plus any machine-readable extras.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from auth.identity import Forbidden, InvalidCredentialsError
from billing.service import (
    BillingDisabledError,
    MissingMetadataError,
    PaymentIncomplete,
    SubscriptionNotFound,
    UpstreamError,
)
from billing.webhooks import InvalidSignature
from generation.providers import GenerationError
from generation.service import InvalidGenerationRequest
from ledger.service import QuotaExceeded
from persistence.db import StorageError

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Malformed or missing input the client can fix."""
    pass


def _error_response(
    status_code: int,
    error: str,
    detail: str,
    code: str,
    **extra,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, "code": code, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach handlers for every domain error to the app."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request",
            "; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
                for err in exc.errors()
            ),
            "VALIDATION_ERROR",
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", str(exc), "VALIDATION_ERROR")

    @app.exception_handler(InvalidGenerationRequest)
    async def generation_request_handler(request: Request, exc: InvalidGenerationRequest):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", str(exc), "VALIDATION_ERROR")

    @app.exception_handler(InvalidCredentialsError)
    async def credentials_handler(request: Request, exc: InvalidCredentialsError):
        response = _error_response(
            status.HTTP_401_UNAUTHORIZED, "Authentication required", str(exc), "UNAUTHENTICATED"
        )
        response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @app.exception_handler(Forbidden)
    async def forbidden_handler(request: Request, exc: Forbidden):
        return _error_response(status.HTTP_403_FORBIDDEN, "Forbidden", str(exc), "FORBIDDEN")

    @app.exception_handler(QuotaExceeded)
    async def quota_handler(request: Request, exc: QuotaExceeded):
        return _error_response(
            status.HTTP_403_FORBIDDEN,
            "Generation limit reached",
            str(exc),
            "QUOTA_EXCEEDED",
            **exc.to_dict(),
        )

    @app.exception_handler(InvalidSignature)
    async def signature_handler(request: Request, exc: InvalidSignature):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Webhook rejected", str(exc), "INVALID_SIGNATURE")

    @app.exception_handler(PaymentIncomplete)
    async def payment_incomplete_handler(request: Request, exc: PaymentIncomplete):
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "Payment incomplete",
            str(exc),
            "PAYMENT_INCOMPLETE",
            paymentStatus=exc.payment_status,
        )

    @app.exception_handler(MissingMetadataError)
    async def missing_metadata_handler(request: Request, exc: MissingMetadataError):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid session", str(exc), "MISSING_METADATA")

    @app.exception_handler(SubscriptionNotFound)
    async def not_found_handler(request: Request, exc: SubscriptionNotFound):
        return _error_response(status.HTTP_404_NOT_FOUND, "Not found", str(exc), "SUBSCRIPTION_NOT_FOUND")

    @app.exception_handler(BillingDisabledError)
    async def billing_disabled_handler(request: Request, exc: BillingDisabledError):
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Billing unavailable", str(exc), "BILLING_DISABLED"
        )

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError):
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc}")
        return _error_response(status.HTTP_502_BAD_GATEWAY, "Payment provider error", str(exc), "UPSTREAM_ERROR")

    @app.exception_handler(GenerationError)
    async def generation_handler(request: Request, exc: GenerationError):
        logger.error(f"Generation failure on {request.url.path}: {exc}")
        code = "SERVICE_DISABLED" if exc.status_code == 503 else "AI_PROVIDER_ERROR"
        return _error_response(exc.status_code, "AI provider error", str(exc), code)

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Storage error", "Account storage is unavailable", "STORAGE_ERROR"
        )
