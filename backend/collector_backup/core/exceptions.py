"""Global exception handlers for the FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from collector_backup.core.errors import BackupSystemError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI application."""

    @app.exception_handler(BackupSystemError)
    async def backup_error_handler(request: Request, exc: BackupSystemError) -> JSONResponse:
        """Render a domain error as `{success: false, error, error_kind, ...}`."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "%s on %s %s: kind=%s %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.kind,
            exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return a clean 422 with structured validation errors."""
        errors = []
        for err in exc.errors():
            field = " -> ".join(str(loc) for loc in err.get("loc", []))
            errors.append({
                "field": field,
                "message": err.get("msg", "Validation error"),
                "type": err.get("type", "unknown"),
            })
        logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Validation error",
                "error_kind": "validation",
                "errors": errors,
            },
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        """Handle metadata store connection/operational errors."""
        logger.error("Database operational error on %s %s: %s", request.method, request.url.path, str(exc))
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "Metadata store temporarily unavailable",
                "error_kind": "database",
            },
        )
