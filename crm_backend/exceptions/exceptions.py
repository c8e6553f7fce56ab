"""
Exception handling with error codes and rich metadata.

This module provides custom HTTP exceptions that integrate with the error registry
to provide consistent, informative error responses with unique error codes.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status
import inspect
from datetime import datetime, timezone

from crm_types.errors import ErrorResponse, ErrorDebugInfo


class CrmException(HTTPException):
    """
    Base exception class for all CRM backend exceptions.

    Provides rich error handling with:
    - Unique error codes from registry
    - Structured error responses
    - Debug information in development mode
    - An optional domain payload (``data``) returned alongside the error
    """

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        error_code: str,
        detail: Any = None,
        headers: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        data: Any = None,
    ):
        """
        Initialize exception with error code and metadata.

        Args:
            error_code: Error code from error registry (e.g., "CHAT_001")
            detail: Additional detail message (overrides registry message if provided)
            headers: HTTP response headers
            context: Additional context for debugging
            user_id: User ID if available
            data: Domain payload echoed to the client (e.g. an existing channel)
        """
        self.error_code = error_code
        self.context = context or {}
        self.user_id = user_id
        self.data = data
        # HTTPException replaces a None detail with the status phrase
        self.custom_detail = detail

        # Get caller information for debugging (skip the __init__ chain)
        caller_frame = inspect.currentframe()
        while caller_frame is not None and caller_frame.f_code.co_name == "__init__":
            caller_frame = caller_frame.f_back
        if caller_frame:
            self.function_name = caller_frame.f_code.co_name
            self.file_name = caller_frame.f_code.co_filename
            self.line_number = caller_frame.f_lineno
        else:
            self.function_name = None
            self.file_name = None
            self.line_number = None

        super().__init__(status_code=self.status_code_default, detail=detail, headers=headers)

    def to_error_response(self, include_debug: bool = False) -> ErrorResponse:
        """
        Convert exception to structured ErrorResponse.

        Args:
            include_debug: Whether to include debug information (dev mode only)

        Returns:
            ErrorResponse with error code, message, and optional debug info
        """
        from crm_backend.exceptions.error_registry import get_error_definition

        error_def = get_error_definition(self.error_code)

        debug_info = None
        if include_debug:
            debug_info = ErrorDebugInfo(
                timestamp=datetime.now(timezone.utc).isoformat(),
                function=self.function_name,
                file=self.file_name,
                line=self.line_number,
                user_id=self.user_id,
                additional_context=self.context,
            )

        message = error_def.message.plain
        details = self.context if self.context else None

        if self.custom_detail:
            if isinstance(self.custom_detail, str):
                message = self.custom_detail
            elif isinstance(self.custom_detail, dict):
                details = self.custom_detail
                if "message" in self.custom_detail and isinstance(self.custom_detail["message"], str):
                    message = self.custom_detail["message"]

        return ErrorResponse(
            error_code=self.error_code,
            message=message,
            details=details,
            data=self.data,
            severity=error_def.severity,
            category=error_def.category,
            retry_after=error_def.retry_after,
            debug=debug_info,
        )


# ============================================================================
# AUTHENTICATION EXCEPTIONS (401)
# ============================================================================


class UnauthorizedException(CrmException):
    """Authentication required - 401"""

    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: Any = None, error_code: str = "AUTH_001", **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class TokenExpiredException(UnauthorizedException):
    """Authentication token expired - 401"""

    def __init__(self, detail: Any = None, error_code: str = "AUTH_002", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


# ============================================================================
# AUTHORIZATION EXCEPTIONS (403)
# ============================================================================


class ForbiddenException(CrmException):
    """Insufficient permissions - 403"""

    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: Any = None, error_code: str = "AUTHZ_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class AdminRequiredException(ForbiddenException):
    """Admin access required - 403"""

    def __init__(self, detail: Any = None, error_code: str = "AUTHZ_002", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


class ChannelAccessDeniedException(ForbiddenException):
    """Requester is not allowed to see the channel - 403"""

    def __init__(self, detail: Any = None, error_code: str = "AUTHZ_003", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


class ChannelLockedException(ForbiddenException):
    """Channel is locked for non-admin writers - 403"""

    def __init__(self, detail: Any = None, error_code: str = "AUTHZ_004", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


# ============================================================================
# VALIDATION EXCEPTIONS (400)
# ============================================================================


class BadRequestException(CrmException):
    """Invalid request data - 400"""

    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = None, error_code: str = "VAL_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class MissingFieldException(BadRequestException):
    """Required field missing - 400"""

    def __init__(self, field_name: str, detail: Any = None, error_code: str = "VAL_002", **kwargs):
        kwargs.setdefault("context", {})
        kwargs["context"]["field_name"] = field_name
        super().__init__(detail=detail, error_code=error_code, **kwargs)


class InvalidOperationException(BadRequestException):
    """Operation not valid for this resource (e.g. locking a direct channel) - 400"""

    def __init__(self, detail: Any = None, error_code: str = "VAL_003", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


class InvalidFileUploadException(BadRequestException):
    """Invalid file upload - 400"""

    def __init__(
        self,
        detail: Any = None,
        error_code: str = "VAL_004",
        max_size: Optional[str] = None,
        **kwargs,
    ):
        if max_size:
            kwargs.setdefault("context", {})
            kwargs["context"]["max_size"] = max_size
        super().__init__(detail=detail, error_code=error_code, **kwargs)


# ============================================================================
# NOT FOUND EXCEPTIONS (404)
# ============================================================================


class NotFoundException(CrmException):
    """Resource not found - 404"""

    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: Any = None, error_code: str = "NF_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class ChannelNotFoundException(NotFoundException):
    """Channel not found - 404"""

    def __init__(self, detail: Any = None, error_code: str = "NF_002", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


# ============================================================================
# CONFLICT EXCEPTIONS (409)
# ============================================================================


class ConflictException(CrmException):
    """Resource conflict - 409"""

    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, detail: Any = None, error_code: str = "CONFLICT_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class DuplicateChannelNameException(ConflictException):
    """A broadcast channel with this name already exists - 409"""

    def __init__(self, detail: Any = None, error_code: str = "CONFLICT_002", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)


# ============================================================================
# RATE LIMITING EXCEPTIONS (429)
# ============================================================================


class RateLimitException(CrmException):
    """Too many requests - 429"""

    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, detail: Any = None, error_code: str = "RATE_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


# ============================================================================
# INTERNAL SERVER EXCEPTIONS (500)
# ============================================================================


class InternalServerException(CrmException):
    """Internal server error - 500"""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: Any = None, error_code: str = "INT_001", **kwargs):
        super().__init__(error_code=error_code, detail=detail, **kwargs)


class PersistenceException(InternalServerException):
    """Chat state could not be written to durable storage - 500"""

    def __init__(self, detail: Any = None, error_code: str = "PERSIST_001", **kwargs):
        super().__init__(detail=detail, error_code=error_code, **kwargs)
