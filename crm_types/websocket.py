"""
WebSocket event DTOs for real-time communication.

This module defines the event types for the chat WebSocket endpoint.
Every frame is a JSON object with a ``type`` field naming the event.

Namespaces:
- (none): Channel rooms, presence and channel administration events
- call: Call room membership and signaling relay
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Base Event Types
# =============================================================================

class WSEventBase(BaseModel):
    """Base class for all WebSocket events."""
    type: str

    model_config = ConfigDict(populate_by_name=True)

    def dump(self) -> dict:
        """Serialize using wire (camelCase) field names."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Client -> Server Events
# =============================================================================

class WSJoin(WSEventBase):
    """Subscribe to a channel room."""
    type: Literal["join"] = "join"
    chat_id: str = Field(..., alias="chatId", description="Channel id to join")


class WSLeave(WSEventBase):
    """Unsubscribe from a channel room."""
    type: Literal["leave"] = "leave"
    chat_id: str = Field(..., alias="chatId")


class WSCallJoin(WSEventBase):
    """Enter the call room of a channel."""
    type: Literal["call:join"] = "call:join"
    chat_id: str = Field(..., alias="chatId")


class WSCallLeave(WSEventBase):
    """Leave the call room of a channel."""
    type: Literal["call:leave"] = "call:leave"
    chat_id: str = Field(..., alias="chatId")


class WSCallSignal(WSEventBase):
    """Opaque signaling payload addressed to a peer in a call room."""
    type: Literal["call:signal"] = "call:signal"
    chat_id: str = Field(..., alias="chatId")
    to: Optional[str] = Field(None, description="Intended recipient user id")
    data: Any = Field(None, description="Signaling blob, relayed verbatim")


class WSPing(WSEventBase):
    """Keep-alive ping from client."""
    type: Literal["ping"] = "ping"


# =============================================================================
# Server -> Client Events
# =============================================================================

class WSConnected(WSEventBase):
    """Connection established confirmation."""
    type: Literal["connected"] = "connected"
    user_id: str = Field(..., alias="userId", description="Identity bound to this connection")


class WSJoined(WSEventBase):
    """Confirmation of a channel room subscription."""
    type: Literal["joined"] = "joined"
    chat_id: str = Field(..., alias="chatId")


class WSLeft(WSEventBase):
    """Confirmation of a channel room unsubscription."""
    type: Literal["left"] = "left"
    chat_id: str = Field(..., alias="chatId")


class WSError(WSEventBase):
    """Error delivered to the offending connection only."""
    type: Literal["error"] = "error"
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class WSUserPresence(WSEventBase):
    """A user came online or went offline."""
    type: Literal["userPresence"] = "userPresence"
    user_id: str = Field(..., alias="userId")
    status: Literal["online", "offline"]
    online_users: list[str] = Field(default_factory=list, alias="onlineUsers")


class WSCallUserJoined(WSEventBase):
    type: Literal["call:user-joined"] = "call:user-joined"
    user_id: str = Field(..., alias="userId")
    chat_id: str = Field(..., alias="chatId")


class WSCallUserLeft(WSEventBase):
    type: Literal["call:user-left"] = "call:user-left"
    user_id: str = Field(..., alias="userId")
    chat_id: str = Field(..., alias="chatId")


class WSCallSignalRelay(WSEventBase):
    """Signaling payload as relayed to call room peers."""
    type: Literal["call:signal"] = "call:signal"
    from_user: str = Field(..., alias="from")
    to: Optional[str] = None
    data: Any = None
    chat_id: str = Field(..., alias="chatId")


class WSNewMessage(WSEventBase):
    type: Literal["newMessage"] = "newMessage"
    message: dict = Field(..., description="Message data (MessageGet serialized)")


class WSChannelCreated(WSEventBase):
    type: Literal["channelCreated"] = "channelCreated"
    channel: dict = Field(..., description="Channel data (ChannelGet serialized)")


class WSChannelLocked(WSEventBase):
    type: Literal["channelLocked"] = "channelLocked"
    id: str
    locked: bool


class WSChannelRenamed(WSEventBase):
    type: Literal["channelRenamed"] = "channelRenamed"
    id: str
    name: str


class WSChannelMemberLeft(WSEventBase):
    type: Literal["channelMemberLeft"] = "channelMemberLeft"
    id: str
    user_id: str = Field(..., alias="userId")


class WSChannelMemberUpdated(WSEventBase):
    type: Literal["channelMemberUpdated"] = "channelMemberUpdated"
    id: str
    members: list[str]


class WSPong(WSEventBase):
    """Keep-alive pong response."""
    type: Literal["pong"] = "pong"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Union Types for Parsing
# =============================================================================

ClientEvent = Union[
    WSJoin,
    WSLeave,
    WSCallJoin,
    WSCallLeave,
    WSCallSignal,
    WSPing,
]

ServerEvent = Union[
    WSConnected,
    WSJoined,
    WSLeft,
    WSError,
    WSUserPresence,
    WSCallUserJoined,
    WSCallUserLeft,
    WSCallSignalRelay,
    WSNewMessage,
    WSChannelCreated,
    WSChannelLocked,
    WSChannelRenamed,
    WSChannelMemberLeft,
    WSChannelMemberUpdated,
    WSPong,
]


# =============================================================================
# Event Type Registry (for handler dispatch)
# =============================================================================

CLIENT_EVENT_TYPES = {
    "join": WSJoin,
    "leave": WSLeave,
    "call:join": WSCallJoin,
    "call:leave": WSCallLeave,
    "call:signal": WSCallSignal,
    "ping": WSPing,
}


def parse_client_event(data: dict) -> Optional[ClientEvent]:
    """
    Parse incoming client event data into typed event object.

    Args:
        data: Raw event data from WebSocket

    Returns:
        Parsed event object or None if invalid
    """
    if not isinstance(data, dict):
        return None

    event_type = data.get("type")
    if not event_type or event_type not in CLIENT_EVENT_TYPES:
        return None

    event_class = CLIENT_EVENT_TYPES[event_type]
    try:
        return event_class.model_validate(data)
    except Exception:
        return None
