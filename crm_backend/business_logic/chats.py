"""Business logic for channel and message operations."""
import logging
from typing import List, Optional, Sequence, Tuple

from fastapi import UploadFile

from crm_backend.exceptions import (
    BadRequestException,
    ChannelAccessDeniedException,
    InvalidOperationException,
    MissingFieldException,
)
from crm_backend.model.chat import BroadcastChannel, Channel, DirectChannel, Message
from crm_backend.permissions.access import ensure_can_access, ensure_can_write
from crm_backend.permissions.principal import Principal
from crm_backend.repositories import ChannelStore, MessageStore
from crm_backend.services.attachment_storage import AttachmentStorage
from crm_backend.websocket.broadcast import ws_broadcast
from crm_backend.websocket.connection_manager import manager

logger = logging.getLogger(__name__)

EMPTY_PREVIEW = "Attachment"


def _required_name(name: Optional[str], message: str) -> str:
    name = (name or "").strip()
    if not name:
        raise MissingFieldException("name", detail=message)
    return name


def list_visible_channels(principal: Principal, channels: ChannelStore) -> List[Channel]:
    """All direct channels plus the broadcast channels the requester belongs to."""
    return channels.visible_to(principal.user_id)


def get_channel(channel_id: str, principal: Principal, channels: ChannelStore) -> Channel:
    channel = channels.require(channel_id)
    ensure_can_access(channel, principal)
    return channel


async def create_broadcast_channel(
    name: Optional[str],
    member_ids: Sequence[str],
    principal: Principal,
    channels: ChannelStore,
) -> BroadcastChannel:
    """
    Create a broadcast channel; the creating admin is always a member.

    Raises:
        MissingFieldException: name missing or blank
        DuplicateChannelNameException: name already used (case-insensitive)
    """
    name = _required_name(name, "Channel name is required.")
    channel = await channels.create_broadcast(name, member_ids, principal.user_id)
    await ws_broadcast.channel_created(channel)
    return channel


async def set_channel_lock(channel_id: str, locked: bool, channels: ChannelStore) -> BroadcastChannel:
    channel = await channels.set_lock(channel_id, locked)
    logger.info(f"Channel {channel_id} {'locked' if channel.locked else 'unlocked'}")
    await ws_broadcast.channel_locked(channel)
    return channel


async def rename_channel(channel_id: str, name: Optional[str], channels: ChannelStore) -> Channel:
    name = _required_name(name, "Channel name is required.")
    channel = await channels.rename(channel_id, name)
    logger.info(f"Channel {channel_id} renamed to {name!r}")
    await ws_broadcast.channel_renamed(channel)
    return channel


async def leave_channel(channel_id: str, principal: Principal, channels: ChannelStore) -> Channel:
    """
    Remove the requester from a channel's members.

    Raises:
        ChannelNotFoundException: unknown channel
        ChannelAccessDeniedException: requester is not a member
    """
    channel = channels.require(channel_id)
    if not channel.has_member(principal.user_id):
        raise ChannelAccessDeniedException(user_id=principal.user_id, context={"channel_id": channel_id})

    channel = await channels.leave(channel_id, principal.user_id)
    manager.remove_user_from_room(principal.user_id, channel_id)
    logger.info(f"User {principal.user_id} left channel {channel_id}")

    await ws_broadcast.member_left(channel_id, principal.user_id)
    await ws_broadcast.members_updated(channel)
    return channel


async def update_channel_members(
    channel_id: str,
    add: Optional[str],
    remove: Optional[str],
    channels: ChannelStore,
) -> Channel:
    """
    Add and/or remove one member of a broadcast channel.

    Adding someone who is already a member still re-announces the member
    list. Removing a non-member is a no-op. Nothing is written and no event
    is sent when neither field applies.
    """
    channel = channels.require(channel_id)
    if isinstance(channel, DirectChannel) and (add or remove):
        raise InvalidOperationException(detail="Cannot change DM members")

    changed = False

    if add:
        channel = await channels.add_member(channel_id, add)
        changed = True
        logger.info(f"Member {add} added to channel {channel_id}")

    if remove and channel.has_member(remove):
        channel = await channels.remove_member(channel_id, remove)
        changed = True
        manager.remove_user_from_room(remove, channel_id)
        logger.info(f"Member {remove} removed from channel {channel_id}")
        await ws_broadcast.member_left(channel_id, remove)

    if changed:
        await ws_broadcast.members_updated(channel)

    return channel


def list_messages(
    channel_id: str,
    principal: Principal,
    channels: ChannelStore,
    messages: MessageStore,
) -> List[Message]:
    get_channel(channel_id, principal, channels)
    return messages.messages_for(channel_id)


async def post_message(
    channel_id: str,
    content: Optional[str],
    files: Sequence[UploadFile],
    principal: Principal,
    channels: ChannelStore,
    messages: MessageStore,
    storage: AttachmentStorage,
) -> Message:
    """
    Append a message to a channel and push it to the channel room.

    Permission rules:
    - requester must pass the channel access check
    - locked broadcast channels accept messages from admins only

    Raises:
        ChannelNotFoundException: unknown channel
        ChannelAccessDeniedException / ChannelLockedException: 403
        BadRequestException: neither content nor attachments
        InvalidFileUploadException: attachment rejected
    """
    channel = channels.require(channel_id)
    ensure_can_write(channel, principal)

    content = content or ""
    files = [f for f in files or [] if f is not None and f.filename]
    if not content and not files:
        raise BadRequestException(detail="Message content or attachment required.")

    attachments = await storage.save_all(files)

    def build(sequence: int) -> Message:
        # the lock may have changed while attachments were being stored
        ensure_can_write(channels.require(channel_id), principal)
        return Message(
            id=sequence,
            chat_id=channel_id,
            sender=principal.name,
            sender_id=principal.user_id,
            message=content,
            attachments=tuple(attachments),
        )

    message = await messages.append(channel_id, build)
    await channels.record_message(channel_id, message_preview(message))

    await ws_broadcast.message_created(message)
    return message


def message_preview(message: Message) -> str:
    """Body text, else the first attachment's name, else a placeholder."""
    if message.message:
        return message.message
    if message.attachments and message.attachments[0].filename:
        return message.attachments[0].filename
    return EMPTY_PREVIEW


async def open_direct_channel(
    user_id: Optional[str],
    name: Optional[str],
    principal: Principal,
    channels: ChannelStore,
) -> Tuple[DirectChannel, bool]:
    """
    Get or create the direct channel between the requester and ``user_id``.

    Returns:
        Tuple of (channel, created)
    """
    user_id = (user_id or "").strip()
    if not user_id:
        raise MissingFieldException("userId", detail="userId is required")
    if user_id == principal.user_id:
        raise InvalidOperationException(detail="Cannot open a DM with yourself")

    channel, created = await channels.get_or_create_direct(principal.user_id, user_id, name)
    return channel, created
