"""
WebSocket Connection Manager.

Manages WebSocket connections, room membership, presence and message routing.
All state is process-local; rooms are channel ids (``<channelId>``) and call
rooms (``call-<channelId>``).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

from crm_backend.permissions.principal import Principal
from crm_backend.settings import settings
from crm_backend.websocket.presence import PresenceTracker
from crm_types.websocket import WSCallUserLeft, WSUserPresence

logger = logging.getLogger(__name__)

CALL_ROOM_PREFIX = "call-"


def call_room(chat_id: str) -> str:
    return f"{CALL_ROOM_PREFIX}{chat_id}"


def is_call_room(room: str) -> bool:
    return room.startswith(CALL_ROOM_PREFIX)


class WebSocketMetrics:
    """
    Simple metrics tracking for WebSocket connections.

    Tracks connection counts, message counts, and error rates.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.total_connections = 0
        self.total_disconnections = 0
        self.total_messages_sent = 0
        self.total_messages_received = 0
        self.total_send_errors = 0
        self.total_send_timeouts = 0
        self.total_connection_limit_hits = 0

    def connection_opened(self):
        self.total_connections += 1

    def connection_closed(self):
        self.total_disconnections += 1

    def message_sent(self):
        self.total_messages_sent += 1

    def message_received(self):
        self.total_messages_received += 1

    def send_error(self):
        self.total_send_errors += 1

    def send_timeout(self):
        self.total_send_timeouts += 1

    def connection_limit_hit(self):
        self.total_connection_limit_hits += 1

    def get_metrics(self) -> dict:
        """Get all metrics as a dictionary."""
        return {
            "total_connections": self.total_connections,
            "total_disconnections": self.total_disconnections,
            "active_connections": self.total_connections - self.total_disconnections,
            "total_messages_sent": self.total_messages_sent,
            "total_messages_received": self.total_messages_received,
            "total_send_errors": self.total_send_errors,
            "total_send_timeouts": self.total_send_timeouts,
            "total_connection_limit_hits": self.total_connection_limit_hits,
            "error_rate": (
                self.total_send_errors / max(self.total_messages_sent, 1)
            ) if self.total_messages_sent > 0 else 0.0
        }


# Global metrics instance
ws_metrics = WebSocketMetrics()


class ConnectionLimitError(Exception):
    """Raised when connection limits are exceeded."""
    def __init__(self, message: str, code: int = 4008):
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass(eq=False)
class Connection:
    """Represents an active WebSocket connection."""
    websocket: WebSocket
    principal: Principal
    rooms: Set[str] = field(default_factory=set)
    online: bool = False

    @property
    def user_id(self) -> str:
        return self.principal.user_id


class ConnectionManager:
    """
    Manages WebSocket connections and room subscriptions.

    Features:
    - Track active connections per user
    - Room membership for channel rooms and call rooms
    - Reference-counted presence with online/offline broadcasts
    - Concurrent fan-out with per-send timeout
    """

    def __init__(self):
        self._connections: Dict[str, List[Connection]] = {}  # user_id -> connections
        self._rooms: Dict[str, Set[Connection]] = {}  # room -> connections
        self.presence = PresenceTracker()

    async def stop(self):
        """Close every connection and clear all state."""
        logger.info("Stopping ConnectionManager...")

        close_tasks = []
        for connections in list(self._connections.values()):
            for conn in connections:
                close_tasks.append(self._close_connection_safe(conn))

        if close_tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*close_tasks, return_exceptions=True),
                    timeout=3.0
                )
            except asyncio.TimeoutError:
                logger.warning(f"Timeout closing {len(close_tasks)} WebSocket connections")

        self.reset()
        logger.info("ConnectionManager stopped")

    def reset(self):
        """Forget all connections, rooms and presence."""
        self._connections.clear()
        self._rooms.clear()
        self.presence.clear()

    async def _close_connection_safe(self, conn: Connection):
        try:
            await asyncio.wait_for(conn.websocket.close(), timeout=1.0)
        except asyncio.TimeoutError:
            logger.debug(f"Timeout closing connection of user {conn.user_id}")
        except Exception as e:
            logger.debug(f"Error closing connection of user {conn.user_id}: {e}")

    async def connect(self, websocket: WebSocket, principal: Principal) -> Connection:
        """
        Accept and register a new WebSocket connection.

        The connection does not count as online until ``mark_online``.

        Raises:
            ConnectionLimitError: If connection limits are exceeded
        """
        user_id = principal.user_id

        total_connections = self.get_connection_count()
        if total_connections >= settings.WS_MAX_TOTAL_CONNECTIONS:
            logger.warning(f"Total connection limit reached: {total_connections}/{settings.WS_MAX_TOTAL_CONNECTIONS}")
            ws_metrics.connection_limit_hit()
            raise ConnectionLimitError("Server connection limit reached", code=4008)

        user_connections = len(self._connections.get(user_id, []))
        if user_connections >= settings.WS_MAX_CONNECTIONS_PER_USER:
            logger.warning(f"User {user_id} connection limit reached: {user_connections}/{settings.WS_MAX_CONNECTIONS_PER_USER}")
            ws_metrics.connection_limit_hit()
            raise ConnectionLimitError(
                f"Too many connections (max {settings.WS_MAX_CONNECTIONS_PER_USER})",
                code=4008
            )

        await websocket.accept()

        connection = Connection(websocket=websocket, principal=principal)
        self._connections.setdefault(user_id, []).append(connection)

        ws_metrics.connection_opened()

        logger.info(f"WebSocket connected: user={user_id}, user_connections={len(self._connections[user_id])}, total={self.get_connection_count()}")

        return connection

    async def mark_online(self, connection: Connection):
        """
        Count the connection towards presence.

        The first connection of a user broadcasts ``userPresence`` (online) to
        everyone; further connections only receive the current snapshot.
        """
        if connection.online:
            return
        connection.online = True

        user_id = connection.user_id
        came_online = self.presence.connect(user_id)
        event = WSUserPresence(
            user_id=user_id,
            status="online",
            online_users=self.presence.snapshot(),
        ).dump()

        if came_online:
            logger.info(f"User online: {user_id}")
            await self.broadcast_all(event)
        else:
            await self.send_to_connection(connection, event)

    async def disconnect(self, connection: Connection):
        """
        Remove a WebSocket connection, leave every room and update presence.

        Call peers are told with ``call:user-left``; the last connection of a
        user broadcasts ``userPresence`` (offline).
        """
        user_id = connection.user_id

        if user_id in self._connections:
            self._connections[user_id] = [
                c for c in self._connections[user_id] if c is not connection
            ]
            if not self._connections[user_id]:
                del self._connections[user_id]

        for room in list(connection.rooms):
            self.leave_room(connection, room)
            if is_call_room(room):
                chat_id = room[len(CALL_ROOM_PREFIX):]
                await self.broadcast_to_room(room, WSCallUserLeft(
                    user_id=user_id,
                    chat_id=chat_id,
                ).dump())

        if connection.online:
            connection.online = False
            if self.presence.disconnect(user_id):
                logger.info(f"User offline: {user_id}")
                await self.broadcast_all(WSUserPresence(
                    user_id=user_id,
                    status="offline",
                    online_users=self.presence.snapshot(),
                ).dump())

        ws_metrics.connection_closed()

        logger.info(f"WebSocket disconnected: user={user_id}")

    def join_room(self, connection: Connection, room: str) -> bool:
        """
        Add a connection to a room.

        Returns:
            True if the connection was not yet in the room
        """
        if room in connection.rooms:
            return False
        connection.rooms.add(room)
        self._rooms.setdefault(room, set()).add(connection)
        logger.debug(f"User {connection.user_id} joined room {room}")
        return True

    def leave_room(self, connection: Connection, room: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if the connection was in the room
        """
        if room not in connection.rooms:
            return False
        connection.rooms.discard(room)

        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]

        logger.debug(f"User {connection.user_id} left room {room}")
        return True

    def remove_user_from_room(self, user_id: str, room: str) -> int:
        """Drop every connection of a user from a room; returns how many left."""
        removed = 0
        for conn in list(self._connections.get(user_id, [])):
            if self.leave_room(conn, room):
                removed += 1
        return removed

    def room_members(self, room: str) -> List[Connection]:
        return list(self._rooms.get(room, ()))

    def online_users(self) -> List[str]:
        return self.presence.snapshot()

    async def _send_with_timeout(self, conn: Connection, data: dict) -> bool:
        """
        Send data to a connection with timeout.

        Returns:
            True if successful, False otherwise
        """
        try:
            await asyncio.wait_for(
                conn.websocket.send_json(data),
                timeout=settings.WS_SEND_TIMEOUT
            )
            ws_metrics.message_sent()
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send timeout to user {conn.user_id}")
            ws_metrics.send_timeout()
            return False
        except Exception as e:
            logger.error(f"Failed to send to user {conn.user_id}: {e}")
            ws_metrics.send_error()
            return False

    async def _send_many(self, connections: List[Connection], event: dict) -> int:
        if not connections:
            return 0
        results = await asyncio.gather(
            *(self._send_with_timeout(conn, event) for conn in connections),
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)

    async def send_to_connection(self, connection: Connection, event: dict) -> bool:
        """Send an event to a specific connection."""
        return await self._send_with_timeout(connection, event)

    async def send_to_user(self, user_id: str, event: dict):
        """Send an event to every connection of a user."""
        await self._send_many(list(self._connections.get(user_id, [])), event)

    async def broadcast_to_room(self, room: str, event: dict, exclude: Optional[Connection] = None):
        """
        Broadcast an event to every connection in a room.

        Args:
            room: Room name
            event: Event data to send
            exclude: Optional connection to skip (usually the sender)
        """
        targets = [conn for conn in self.room_members(room) if conn is not exclude]
        sent = await self._send_many(targets, event)
        logger.debug(f"Broadcast {event.get('type')} to room {room}: {sent}/{len(targets)} successful")

    async def broadcast_all(self, event: dict):
        """Broadcast an event to every open connection."""
        targets = [conn for conns in list(self._connections.values()) for conn in conns]
        sent = await self._send_many(targets, event)
        logger.debug(f"Broadcast {event.get('type')} to all: {sent}/{len(targets)} successful")

    def get_connection_count(self) -> int:
        """Get total number of active connections."""
        return sum(len(conns) for conns in self._connections.values())

    def get_user_count(self) -> int:
        """Get number of unique connected users."""
        return len(self._connections)

    def get_metrics(self) -> dict:
        """
        Get comprehensive WebSocket metrics.

        Returns:
            Dictionary with connection and message metrics
        """
        metrics = ws_metrics.get_metrics()
        metrics.update({
            "current_connections": self.get_connection_count(),
            "current_users": self.get_user_count(),
            "online_users": len(self.presence.snapshot()),
            "active_rooms": len(self._rooms),
        })
        return metrics


# Singleton instance
manager = ConnectionManager()
