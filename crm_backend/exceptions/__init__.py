"""
Error handling package for the CRM chat backend.

This package provides:
- Custom exception classes with error codes
- Error registry management
- FastAPI exception handlers
- Structured error responses

Usage:
    from crm_backend.exceptions import (
        ChannelNotFoundException,
        ChannelAccessDeniedException,
        register_exception_handlers,
    )
"""

from crm_backend.exceptions.exceptions import (
    CrmException,

    # Authentication exceptions (401)
    UnauthorizedException,
    TokenExpiredException,

    # Authorization exceptions (403)
    ForbiddenException,
    AdminRequiredException,
    ChannelAccessDeniedException,
    ChannelLockedException,

    # Validation exceptions (400)
    BadRequestException,
    MissingFieldException,
    InvalidOperationException,
    InvalidFileUploadException,

    # Not found exceptions (404)
    NotFoundException,
    ChannelNotFoundException,

    # Conflict exceptions (409)
    ConflictException,
    DuplicateChannelNameException,

    # Rate limiting exceptions (429)
    RateLimitException,

    # Internal server exceptions (500)
    InternalServerException,
    PersistenceException,
)

from crm_backend.exceptions.error_registry import (
    load_error_registry,
    get_error_definition,
    get_all_error_codes,
    validate_error_registry,
)

from crm_backend.exceptions.error_handlers import (
    register_exception_handlers,
    crm_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)


__all__ = [
    "CrmException",
    "UnauthorizedException",
    "TokenExpiredException",
    "ForbiddenException",
    "AdminRequiredException",
    "ChannelAccessDeniedException",
    "ChannelLockedException",
    "BadRequestException",
    "MissingFieldException",
    "InvalidOperationException",
    "InvalidFileUploadException",
    "NotFoundException",
    "ChannelNotFoundException",
    "ConflictException",
    "DuplicateChannelNameException",
    "RateLimitException",
    "InternalServerException",
    "PersistenceException",
    "load_error_registry",
    "get_error_definition",
    "get_all_error_codes",
    "validate_error_registry",
    "register_exception_handlers",
    "crm_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "generic_exception_handler",
]
