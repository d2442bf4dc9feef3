"""Global error handlers — every error is a JSON body with at least ``detail``."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unibits.errors import UnibitsError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for domain, HTTP, validation and unexpected errors."""

    @app.exception_handler(UnibitsError)
    async def domain_error_handler(request: Request, exc: UnibitsError) -> JSONResponse:
        """Render a domain error with its stable code and context."""
        logger.info(
            "domain_error",
            code=exc.code,
            path=request.url.path,
            detail=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "code": "validation_error", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions — log them, return a generic 500."""
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
