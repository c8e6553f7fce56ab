"""
WebSocket event handlers.

Handles incoming client events and dispatches appropriate actions. Errors
are reported to the offending connection only; the socket stays open.
"""

import logging
from datetime import datetime, timezone

from crm_backend.permissions.access import can_access
from crm_backend.stores import get_channel_store
from crm_backend.websocket.connection_manager import Connection, call_room, manager
from crm_types.websocket import (
    parse_client_event,
    WSJoin,
    WSLeave,
    WSCallJoin,
    WSCallLeave,
    WSCallSignal,
    WSPing,
    WSJoined,
    WSLeft,
    WSCallUserJoined,
    WSCallUserLeft,
    WSCallSignalRelay,
    WSPong,
    WSError,
)

logger = logging.getLogger(__name__)


async def handle_client_message(connection: Connection, raw_data: dict):
    """
    Handle an incoming message from a WebSocket client.

    Parses the event and dispatches to the appropriate handler.

    Args:
        connection: The WebSocket connection
        raw_data: Raw JSON data from the client
    """
    event = parse_client_event(raw_data)

    if event is None:
        event_type = raw_data.get("type", "missing") if isinstance(raw_data, dict) else "missing"
        await send_error(connection, "INVALID_EVENT", f"Unknown or invalid event type: {event_type}")
        return

    try:
        if isinstance(event, WSJoin):
            await handle_join(connection, event)

        elif isinstance(event, WSLeave):
            await handle_leave(connection, event)

        elif isinstance(event, WSCallJoin):
            await handle_call_join(connection, event)

        elif isinstance(event, WSCallLeave):
            await handle_call_leave(connection, event)

        elif isinstance(event, WSCallSignal):
            await handle_call_signal(connection, event)

        elif isinstance(event, WSPing):
            await handle_ping(connection)

        else:
            await send_error(connection, "UNHANDLED_EVENT", f"Event type not implemented: {event.type}")

    except Exception as e:
        logger.error(f"Error handling event {event.type} from user={connection.user_id}: {e}")
        await send_error(connection, "HANDLER_ERROR", "Failed to handle event")


async def send_error(connection: Connection, code: str, message: str):
    await manager.send_to_connection(connection, WSError(code=code, message=message).dump())


async def _check_channel_access(connection: Connection, chat_id: str) -> bool:
    """Run the channel access rule for the bound identity; report refusals."""
    channel = get_channel_store().get(chat_id)
    if channel is None:
        logger.warning(f"User {connection.user_id} referenced unknown channel {chat_id}")
        await send_error(connection, "NOT_FOUND", "Channel not found")
        return False

    principal = connection.principal
    if not can_access(channel, principal.user_id, principal.is_admin):
        logger.warning(f"User {connection.user_id} denied access to channel {chat_id}")
        await send_error(connection, "FORBIDDEN", "Access denied")
        return False

    return True


async def handle_join(connection: Connection, event: WSJoin):
    """Subscribe to a channel room after the access check."""
    if not await _check_channel_access(connection, event.chat_id):
        return

    manager.join_room(connection, event.chat_id)
    await manager.send_to_connection(connection, WSJoined(chat_id=event.chat_id).dump())


async def handle_leave(connection: Connection, event: WSLeave):
    manager.leave_room(connection, event.chat_id)
    await manager.send_to_connection(connection, WSLeft(chat_id=event.chat_id).dump())


async def handle_call_join(connection: Connection, event: WSCallJoin):
    """
    Enter a channel's call room.

    Uses the same access check as ``join``; other participants are told
    about the newcomer.
    """
    if not await _check_channel_access(connection, event.chat_id):
        return

    room = call_room(event.chat_id)
    if manager.join_room(connection, room):
        await manager.broadcast_to_room(room, WSCallUserJoined(
            user_id=connection.user_id,
            chat_id=event.chat_id,
        ).dump(), exclude=connection)


async def handle_call_leave(connection: Connection, event: WSCallLeave):
    room = call_room(event.chat_id)
    if manager.leave_room(connection, room):
        await manager.broadcast_to_room(room, WSCallUserLeft(
            user_id=connection.user_id,
            chat_id=event.chat_id,
        ).dump())


async def handle_call_signal(connection: Connection, event: WSCallSignal):
    """
    Relay a signaling payload to the other participants of the call room.

    ``data`` is forwarded untouched; ``to`` is not checked against the room.
    """
    room = call_room(event.chat_id)
    if room not in connection.rooms:
        await send_error(connection, "NOT_IN_CALL", f"Not in call for channel: {event.chat_id}")
        return

    await manager.broadcast_to_room(room, WSCallSignalRelay(
        from_user=connection.user_id,
        to=event.to,
        data=event.data,
        chat_id=event.chat_id,
    ).dump(), exclude=connection)


async def handle_ping(connection: Connection):
    """Handle keep-alive ping."""
    await manager.send_to_connection(connection, WSPong(
        timestamp=datetime.now(timezone.utc)
    ).dump())
