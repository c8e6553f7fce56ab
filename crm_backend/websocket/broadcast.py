"""
WebSocket Broadcast Service.

Provides an interface for REST API operations to push channel events to
connected sockets. Channel administration events go to every connection;
membership updates go to the channel's room; new messages go to the room.
"""

import logging

from crm_backend.model.chat import BroadcastChannel, Channel, Message
from crm_backend.websocket.connection_manager import manager
from crm_types.websocket import (
    WSChannelCreated,
    WSChannelLocked,
    WSChannelMemberLeft,
    WSChannelMemberUpdated,
    WSChannelRenamed,
    WSNewMessage,
)

logger = logging.getLogger(__name__)


class WebSocketBroadcast:
    """
    Service for broadcasting events from REST API to WebSocket subscribers.

    Usage in business logic:
        from crm_backend.websocket import ws_broadcast

        # After posting a message
        await ws_broadcast.message_created(message)
    """

    async def message_created(self, message: Message):
        await manager.broadcast_to_room(message.chat_id, WSNewMessage(message=message.to_dict()).dump())
        logger.debug(f"Broadcast newMessage {message.id} to {message.chat_id}")

    async def channel_created(self, channel: Channel):
        await manager.broadcast_all(WSChannelCreated(channel=channel.to_dict()).dump())

    async def channel_locked(self, channel: BroadcastChannel):
        await manager.broadcast_all(WSChannelLocked(id=channel.id, locked=channel.locked).dump())

    async def channel_renamed(self, channel: Channel):
        await manager.broadcast_all(WSChannelRenamed(id=channel.id, name=channel.name).dump())

    async def member_left(self, channel_id: str, user_id: str):
        await manager.broadcast_all(WSChannelMemberLeft(id=channel_id, user_id=user_id).dump())

    async def members_updated(self, channel: Channel):
        """Room-scoped: only sockets subscribed to the channel are told."""
        await manager.broadcast_to_room(channel.id, WSChannelMemberUpdated(
            id=channel.id,
            members=list(channel.members),
        ).dump())


# Singleton instance
ws_broadcast = WebSocketBroadcast()
