"""Global error handler — consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from promominer.miner.errors import (
    ERROR_MESSAGES,
    ConcurrencyConflictError,
    ErrorKind,
    LedgerNotFoundError,
    MinerError,
    MinerRejectedError,
)

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(MinerRejectedError)
    async def miner_rejected_handler(_request: Request, exc: MinerRejectedError) -> JSONResponse:
        """Business rejections from the miner routes."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.kind.value},
        )

    @app.exception_handler(MinerError)
    async def miner_exception_handler(request: Request, exc: MinerError) -> JSONResponse:
        """Engine failures that escaped a typed result."""
        if isinstance(exc, ConcurrencyConflictError):
            kind = ErrorKind.CONCURRENCY_CONFLICT
            return JSONResponse(
                status_code=503,
                content={"detail": ERROR_MESSAGES[kind], "error": kind.value},
            )

        kind_name = ErrorKind.LEDGER_NOT_FOUND.value if isinstance(exc, LedgerNotFoundError) else type(exc).__name__
        logger.error(
            "miner_internal_error",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            kind=kind_name,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": kind_name},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions — always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
