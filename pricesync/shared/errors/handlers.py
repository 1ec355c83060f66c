"""
Centralized error handlers for FastAPI.

Maps price-sync domain errors to HTTP responses.
No stack traces or internal details are exposed to clients.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pricesync.domain.market.errors import (
    InvalidTriggerSpecError,
    JobNotFoundError,
    PriceSyncError,
    StoreUnavailableError,
    UnknownUpdateTypeError,
)

logger = logging.getLogger(__name__)

HTTP_404 = 404
HTTP_422 = 422
HTTP_500 = 500
HTTP_503 = 503


def _error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict[str, str | None] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register all domain error handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(JobNotFoundError)
    async def handle_job_not_found(
        _request: Request, exc: JobNotFoundError
    ) -> JSONResponse:
        logger.warning("Job not found: %s", exc.name)
        return _error_response(HTTP_404, "Job not found", exc.name)

    @app.exception_handler(UnknownUpdateTypeError)
    async def handle_unknown_update_type(
        _request: Request, exc: UnknownUpdateTypeError
    ) -> JSONResponse:
        logger.warning("Unknown update type: %s", exc.update_type)
        return _error_response(HTTP_422, "Unknown update type", "Use 'regular' or 'closing'")

    @app.exception_handler(InvalidTriggerSpecError)
    async def handle_invalid_trigger(
        _request: Request, exc: InvalidTriggerSpecError
    ) -> JSONResponse:
        logger.warning("Invalid trigger spec: %s", exc.spec)
        return _error_response(HTTP_422, "Invalid trigger spec", exc.reason)

    @app.exception_handler(StoreUnavailableError)
    async def handle_store_unavailable(
        _request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        logger.error("Store unavailable")
        return _error_response(HTTP_503, "Database not connected")

    @app.exception_handler(PriceSyncError)
    async def handle_price_sync(
        _request: Request, exc: PriceSyncError
    ) -> JSONResponse:
        """Catch-all for unhandled price-sync domain errors."""
        logger.error("Unhandled price-sync error: %s", exc.message)
        return _error_response(HTTP_500, "Internal server error")

    @app.exception_handler(Exception)
    async def handle_unexpected(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unexpected errors. Never exposes internals."""
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_response(HTTP_500, "Internal server error")
