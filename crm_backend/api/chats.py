from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from crm_backend.business_logic.chats import (
    create_broadcast_channel,
    get_channel,
    leave_channel,
    list_messages,
    list_visible_channels,
    open_direct_channel,
    post_message,
    rename_channel,
    set_channel_lock,
    update_channel_members,
)
from crm_backend.permissions.auth import get_current_principal, require_admin
from crm_backend.permissions.principal import Principal
from crm_backend.repositories import ChannelStore, MessageStore
from crm_backend.services.attachment_storage import AttachmentStorage, get_attachment_storage
from crm_backend.settings import settings
from crm_backend.stores import get_channel_store, get_message_store
from crm_types.chats import (
    ChannelCreate,
    ChannelGet,
    ChannelLock,
    ChannelMembersUpdate,
    ChannelRename,
    DirectChannelCreate,
    MessageGet,
)
from crm_types.responses import ApiResponse, DirectChannelResponse

# Rate limiter for message posting (per client address)
limiter = Limiter(key_func=get_remote_address)

chats_router = APIRouter()


@chats_router.post("", response_model=ApiResponse[ChannelGet], status_code=status.HTTP_201_CREATED)
async def create_channel(
    payload: ChannelCreate,
    principal: Annotated[Principal, Depends(require_admin)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Create a broadcast channel (admin only). The creator is always a member."""
    channel = await create_broadcast_channel(payload.name, payload.members, principal, channels)
    return {"data": channel.to_dict()}


@chats_router.get("", response_model=ApiResponse[List[ChannelGet]])
async def list_channels(
    principal: Annotated[Principal, Depends(get_current_principal)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Channels visible to the requester."""
    return {"data": [c.to_dict() for c in list_visible_channels(principal, channels)]}


@chats_router.post("/dm", response_model=DirectChannelResponse)
async def create_direct_channel(
    payload: DirectChannelCreate,
    principal: Annotated[Principal, Depends(get_current_principal)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Idempotent get-or-create of the DM between the requester and ``userId``."""
    channel, created = await open_direct_channel(payload.user_id, payload.name, principal, channels)
    return {"id": channel.id, "created": created, "data": channel.to_dict()}


@chats_router.get("/{channel_id}", response_model=ApiResponse[ChannelGet])
async def get_single_channel(
    channel_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    channels: ChannelStore = Depends(get_channel_store),
):
    return {"data": get_channel(channel_id, principal, channels).to_dict()}


@chats_router.post("/{channel_id}/lock", response_model=ApiResponse[ChannelGet])
async def lock_channel(
    channel_id: str,
    payload: ChannelLock,
    principal: Annotated[Principal, Depends(require_admin)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Lock or unlock a broadcast channel (admin only)."""
    channel = await set_channel_lock(channel_id, payload.locked, channels)
    return {"data": channel.to_dict()}


@chats_router.put("/{channel_id}/rename", response_model=ApiResponse[ChannelGet])
async def rename(
    channel_id: str,
    payload: ChannelRename,
    principal: Annotated[Principal, Depends(require_admin)],
    channels: ChannelStore = Depends(get_channel_store),
):
    channel = await rename_channel(channel_id, payload.name, channels)
    return {"data": channel.to_dict()}


@chats_router.put("/{channel_id}/leave", response_model=ApiResponse[ChannelGet])
async def leave(
    channel_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Remove yourself from a channel."""
    channel = await leave_channel(channel_id, principal, channels)
    return {"data": channel.to_dict()}


@chats_router.put("/{channel_id}/members", response_model=ApiResponse[ChannelGet])
async def update_members(
    channel_id: str,
    payload: ChannelMembersUpdate,
    principal: Annotated[Principal, Depends(require_admin)],
    channels: ChannelStore = Depends(get_channel_store),
):
    """Add and/or remove a member of a broadcast channel (admin only)."""
    channel = await update_channel_members(channel_id, payload.add, payload.remove, channels)
    return {"data": channel.to_dict()}


@chats_router.get("/{channel_id}/messages", response_model=ApiResponse[List[MessageGet]])
async def get_messages(
    channel_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    channels: ChannelStore = Depends(get_channel_store),
    messages: MessageStore = Depends(get_message_store),
):
    """Message history of a channel, oldest first."""
    return {"data": [m.to_dict() for m in list_messages(channel_id, principal, channels, messages)]}


@chats_router.post(
    "/{channel_id}/messages",
    response_model=ApiResponse[MessageGet],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.RATE_LIMIT_MESSAGES)
async def create_message(
    request: Request,
    channel_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    content: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    channels: ChannelStore = Depends(get_channel_store),
    messages: MessageStore = Depends(get_message_store),
    storage: AttachmentStorage = Depends(get_attachment_storage),
):
    """
    Post a message (multipart: ``content`` text and ``attachments`` files).

    Locked channels accept messages from admins only.
    """
    message = await post_message(
        channel_id,
        content,
        attachments or [],
        principal,
        channels,
        messages,
        storage,
    )
    return {"data": message.to_dict()}
