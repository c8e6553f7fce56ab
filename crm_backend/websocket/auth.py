"""
WebSocket authentication module.

A socket is bound to an identity at handshake time, from either:
1. ``token`` query parameter: a bearer JWT, verified like HTTP requests
2. ``userId`` query parameter: trusted as-is when
   ``WS_ALLOW_USER_ID_HANDSHAKE`` is enabled (never grants admin)
"""

import logging
from typing import Optional

from crm_backend.exceptions import CrmException
from crm_backend.permissions.auth import decode_token
from crm_backend.permissions.principal import Principal
from crm_backend.settings import settings

logger = logging.getLogger(__name__)


class WebSocketAuthError(Exception):
    """Exception raised when WebSocket authentication fails."""

    def __init__(self, code: int, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(reason)


def authenticate_websocket(token: Optional[str], user_id: Optional[str]) -> Principal:
    """
    Resolve the principal for a socket handshake.

    Raises:
        WebSocketAuthError: If no usable identity was supplied
    """
    if token:
        try:
            principal = decode_token(token)
        except CrmException as e:
            raise WebSocketAuthError(4001, e.to_error_response().message)
        logger.info(f"WebSocket token authentication successful for user {principal.user_id}")
        return principal

    if user_id:
        if not settings.WS_ALLOW_USER_ID_HANDSHAKE:
            raise WebSocketAuthError(4001, "Token required")
        return Principal(user_id=str(user_id))

    raise WebSocketAuthError(4001, "No token or userId provided")
