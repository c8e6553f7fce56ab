"""
FastAPI exception handlers for structured error responses.

Every error leaves the API as
``{"success": false, "error_code": ..., "message": ...}`` plus optional
``data``, ``details`` and (development only) ``debug`` keys.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import logging

from crm_backend.exceptions.exceptions import (
    CrmException,
    BadRequestException,
    InternalServerException,
    RateLimitException,
)
from crm_backend.settings import settings


logger = logging.getLogger(__name__)


def _include_debug() -> bool:
    return (
        settings.DEBUG_MODE.lower() in ['dev', 'development', 'local']
        and not settings.DISABLE_API_DEBUG_INFO
    )


def _render(exc: CrmException, include_debug: bool, details=None) -> dict:
    error_response = exc.to_error_response(include_debug=include_debug)

    response_data = {
        "success": False,
        "error_code": error_response.error_code,
        "message": error_response.message,
    }

    if error_response.data is not None:
        response_data["data"] = error_response.data

    if details:
        response_data["details"] = details

    if include_debug and error_response.debug:
        response_data["debug"] = error_response.debug.model_dump(exclude_none=True)

    return response_data


async def crm_exception_handler(request: Request, exc: CrmException) -> JSONResponse:
    """
    Handle CrmException instances.

    SECURITY NOTE: Debug information (file paths, function names, line numbers)
    is ONLY included when DEBUG_MODE is 'dev', 'development', or 'local'.
    """
    log_error(request, exc)

    return JSONResponse(
        status_code=exc.status_code,
        content=_render(exc, _include_debug()),
        headers=exc.headers or {},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert Pydantic validation errors to a VAL_001 response."""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(x) for x in error["loc"][1:])  # Skip 'body' prefix
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    exception = BadRequestException(
        detail="Request validation failed",
        context={"validation_errors": errors},
    )

    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"validation_errors": errors},
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_render(exception, _include_debug(), details={"validation_errors": errors} if errors else None),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Handle standard HTTPException from Starlette/FastAPI.

    Converts to appropriate CrmException type based on status code.
    """
    from crm_backend.exceptions.exceptions import (
        UnauthorizedException,
        ForbiddenException,
        NotFoundException,
        ConflictException,
    )

    exception_map = {
        status.HTTP_400_BAD_REQUEST: BadRequestException,
        status.HTTP_401_UNAUTHORIZED: UnauthorizedException,
        status.HTTP_403_FORBIDDEN: ForbiddenException,
        status.HTTP_404_NOT_FOUND: NotFoundException,
        status.HTTP_409_CONFLICT: ConflictException,
        status.HTTP_429_TOO_MANY_REQUESTS: RateLimitException,
    }

    exception_class = exception_map.get(exc.status_code)
    if exception_class is None:
        # Keep the original status (e.g. 405) with the generic envelope
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error_code": f"HTTP_{exc.status_code}", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None) or {},
        )

    crm_exc = exception_class(
        detail=exc.detail,
        headers=getattr(exc, "headers", None),
    )

    return await crm_exception_handler(request, crm_exc)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render slowapi rate limit hits with the standard error envelope."""
    crm_exc = RateLimitException(detail=f"Rate limit exceeded: {exc.detail}")
    return await crm_exception_handler(request, crm_exc)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full traceback and returns a generic internal server error.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}",
        exc_info=exc,
    )

    exception = InternalServerException(
        detail="An unexpected error occurred",
        context={
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
    )

    include_debug = _include_debug()
    if include_debug:
        exception.context["traceback"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_render(exception, include_debug),
    )


def log_error(request: Request, exception: CrmException) -> None:
    """Log error with structured information."""
    log_data = {
        "error_code": exception.error_code,
        "status_code": exception.status_code,
        "method": request.method,
        "path": request.url.path,
        "user_id": exception.user_id or getattr(request.state, "user_id", None),
        "function": exception.function_name,
        "context": exception.context,
    }

    if exception.status_code >= 500:
        logger.error(f"Server error: {exception.error_code}", extra=log_data, exc_info=True)
    elif exception.status_code >= 400:
        logger.warning(f"Client error: {exception.error_code}", extra=log_data)
    else:
        logger.info(f"Error: {exception.error_code}", extra=log_data)


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(CrmException, crm_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Registered custom exception handlers")
