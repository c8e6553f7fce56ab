"""
Channel access control.

``can_access`` is the single membership rule shared by HTTP handlers and the
socket join path; ``can_write`` adds the lock gate for posting.
"""

from crm_backend.exceptions import ChannelAccessDeniedException, ChannelLockedException
from crm_backend.model.chat import BroadcastChannel, Channel
from crm_backend.permissions.principal import Principal


def can_access(channel: Channel, user_id: str, is_admin: bool) -> bool:
    """Broadcast channels: admins or members. Direct channels: members only."""
    if isinstance(channel, BroadcastChannel):
        return is_admin or channel.has_member(user_id)
    return channel.has_member(user_id)


def can_write(channel: Channel, user_id: str, is_admin: bool) -> bool:
    if not can_access(channel, user_id, is_admin):
        return False
    if isinstance(channel, BroadcastChannel) and channel.locked and not is_admin:
        return False
    return True


def ensure_can_access(channel: Channel, principal: Principal) -> None:
    if not can_access(channel, principal.user_id, principal.is_admin):
        raise ChannelAccessDeniedException(
            user_id=principal.user_id,
            context={"channel_id": channel.id},
        )


def ensure_can_write(channel: Channel, principal: Principal) -> None:
    """Raise 403 when the principal may not post to ``channel``."""
    ensure_can_access(channel, principal)
    if not can_write(channel, principal.user_id, principal.is_admin):
        raise ChannelLockedException(
            user_id=principal.user_id,
            context={"channel_id": channel.id},
        )
