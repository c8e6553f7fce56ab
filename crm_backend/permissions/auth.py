"""
Bearer token authentication.

Identity is carried by a JWT in ``Authorization: Bearer <token>`` signed with
``settings.JWT_SECRET``. The decoded claims become a ``Principal``:

- ``id``: user identifier (required)
- ``role``: ``admin`` grants administrator capability
- ``name``: display name used as message sender
"""

import logging
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security.utils import get_authorization_scheme_param

from crm_backend.exceptions import (
    AdminRequiredException,
    TokenExpiredException,
    UnauthorizedException,
)
from crm_backend.permissions.principal import Principal
from crm_backend.settings import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> Principal:
    """
    Verify a bearer token and build the principal it describes.

    Raises:
        TokenExpiredException: token signature is valid but expired
        UnauthorizedException: token is malformed, badly signed or has no id
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise UnauthorizedException("Invalid token")

    try:
        return Principal.from_claims(claims)
    except ValueError as e:
        raise UnauthorizedException(str(e))


def parse_bearer_token(request: Request) -> str:
    """Extract the raw token from the Authorization header."""
    authorization = request.headers.get("Authorization")
    if not authorization:
        raise UnauthorizedException("No authorization provided")

    scheme, param = get_authorization_scheme_param(authorization)

    if not param:
        raise UnauthorizedException("Invalid authorization format")

    if scheme.lower() != "bearer":
        raise UnauthorizedException(f"Unsupported auth scheme: {scheme}")

    return param


async def get_current_principal(
    token: Annotated[str, Depends(parse_bearer_token)],
) -> Principal:
    """Main dependency for getting the current authenticated principal."""
    return decode_token(token)


async def require_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """Dependency for endpoints restricted to administrators."""
    if not principal.is_admin:
        raise AdminRequiredException(user_id=principal.user_id)
    return principal
