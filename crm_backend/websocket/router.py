"""
WebSocket router and endpoint.

Provides the FastAPI WebSocket endpoint for real-time chat, presence and
call signaling.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from crm_backend.websocket.auth import authenticate_websocket, WebSocketAuthError
from crm_backend.websocket.connection_manager import manager, ws_metrics, ConnectionLimitError
from crm_backend.websocket.handlers import handle_client_message, send_error
from crm_types.websocket import WSConnected, WSError

logger = logging.getLogger(__name__)

ws_router = APIRouter()


async def _refuse(websocket: WebSocket, code: int, error_code: str, reason: str):
    """Accept only to deliver an error event, then close with ``code``."""
    try:
        await websocket.accept()
        await websocket.send_json(WSError(code=error_code, message=reason).dump())
        await websocket.close(code=code, reason=reason)
    except Exception as e:
        logger.debug(f"Could not deliver refusal ({error_code}): {e}")


@ws_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer token for authentication"),
    user_id: Optional[str] = Query(None, alias="userId", description="Bare user id (if enabled)"),
):
    """
    Main WebSocket endpoint for real-time communication.

    Authentication:
        ws://localhost:8000/ws?token=<bearer_token>
        ws://localhost:8000/ws?userId=<user_id>   (when WS_ALLOW_USER_ID_HANDSHAKE)

    Connection Flow:
        1. Client connects with token or userId
        2. Server binds the identity and sends ``connected``
        3. Server announces presence (``userPresence``)
        4. Client joins channel rooms with ``join``; the server checks
           membership and confirms with ``joined`` or sends ``error``

    Client -> Server Events:
        - join / leave: {"type": "join", "chatId": "<id>"}
        - call:join / call:leave: {"type": "call:join", "chatId": "<id>"}
        - call:signal: {"type": "call:signal", "chatId": "<id>", "to": "<user>", "data": {...}}
        - ping: {"type": "ping"}

    Server -> Client Events:
        - connected, joined, left, error, pong
        - userPresence: {"userId", "status", "onlineUsers"}
        - call:user-joined, call:user-left, call:signal
        - newMessage, channelCreated, channelLocked, channelRenamed,
          channelMemberLeft, channelMemberUpdated
    """
    connection = None

    try:
        principal = authenticate_websocket(token, user_id)

        connection = await manager.connect(websocket, principal)

        await manager.send_to_connection(connection, WSConnected(
            user_id=principal.user_id
        ).dump())

        await manager.mark_online(connection)

        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected: user={principal.user_id}")
                break

            if message["type"] != "websocket.receive" or message.get("text") is None:
                continue

            ws_metrics.message_received()
            try:
                data = json.loads(message["text"])
            except json.JSONDecodeError as e:
                logger.warning(f"WebSocket invalid JSON from user={principal.user_id}: {e}")
                await send_error(connection, "INVALID_JSON", "Message must be valid JSON")
                continue

            await handle_client_message(connection, data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user={connection.user_id if connection else 'unknown'}")

    except WebSocketAuthError as e:
        logger.warning(f"WebSocket auth failed: {e.reason}")
        await _refuse(websocket, e.code, "AUTH_FAILED", e.reason)

    except ConnectionLimitError as e:
        logger.warning(f"WebSocket connection limit: {e.message}")
        await _refuse(websocket, e.code, "CONNECTION_LIMIT", e.message)

    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        try:
            await websocket.close(code=1011, reason="Internal error")
        except Exception:
            logger.debug("WebSocket already closed")

    finally:
        if connection:
            await manager.disconnect(connection)
