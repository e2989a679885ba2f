"""Global exception handlers mapping errors to the {error, code?, param?} envelope"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from piggybank_connect.domain.exceptions import DomainError, InvalidInputError, UnknownError
from piggybank_connect.domain.translator import GENERIC_MESSAGE

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register domain, validation and catch-all handlers on the app"""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info(
            "Domain error",
            extra={"kind": exc.kind.value, "error_code": exc.code, "path": request.url.path},
        )
        return JSONResponse(status_code=exc.http_hint, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        param = None
        if errors:
            # loc is ("body" | "query" | "header", field, ...)
            loc = [str(part) for part in errors[0].get("loc", ())[1:]]
            param = ".".join(loc) or None
        message = f"Invalid value for {param}." if param else "Invalid request."
        error = InvalidInputError(message, code="parameter_invalid", param=param)
        logger.warning("Validation error", extra={"path": request.url.path, "param": param})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_response())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=UnknownError(GENERIC_MESSAGE).to_response(),
        )
