"""
Channel store: the set of broadcast and direct channels.

The store owns the in-memory collection and is the only writer of
``channels.json``. Mutations of one channel are serialized by a per-channel
``asyncio.Lock``; operations that depend on the set of names (create,
rename, direct get-or-create) additionally hold the collection lock. Every
mutation writes the full collection before it is committed to memory, so a
failed write leaves the in-memory state untouched.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, Iterable, Optional

from starlette.concurrency import run_in_threadpool

from crm_backend.exceptions import (
    ChannelNotFoundException,
    DuplicateChannelNameException,
    InvalidOperationException,
)
from crm_backend.model.chat import (
    BroadcastChannel,
    Channel,
    DirectChannel,
    channel_from_dict,
    direct_channel_id,
)
from crm_backend.repositories.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

CHANNELS_FILE = "channels.json"


class ChannelStore:
    """
    Owner of all channel records.

    Features:
    - Case-insensitive unique names among broadcast channels
    - Deterministic, idempotent direct channels
    - Per-channel serialization of read-modify-write operations
    """

    def __init__(self, data_dir: Path | str):
        self._path = Path(data_dir) / CHANNELS_FILE
        self._channels: dict[str, Channel] = {}
        self._channel_locks: dict[str, asyncio.Lock] = {}
        self._collection_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    def load(self) -> int:
        """Load channels from disk, replacing the in-memory collection."""
        records = read_json(self._path, default=[])
        channels = {}
        for record in records:
            channel = channel_from_dict(record)
            channels[channel.id] = channel
        self._channels = channels
        logger.info(f"Loaded {len(channels)} channels from {self._path}")
        return len(channels)

    # ------------------------------------------------------------------ reads

    def get(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def require(self, channel_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is None:
            raise ChannelNotFoundException(context={"channel_id": channel_id})
        return channel

    def list_all(self) -> list[Channel]:
        return list(self._channels.values())

    def visible_to(self, user_id: str) -> list[Channel]:
        """All direct channels plus the broadcast channels the user belongs to."""
        return [
            channel for channel in self._channels.values()
            if isinstance(channel, DirectChannel) or channel.has_member(user_id)
        ]

    def find_broadcast_by_name(self, name: str) -> Optional[BroadcastChannel]:
        wanted = name.lower()
        for channel in self._channels.values():
            if isinstance(channel, BroadcastChannel) and channel.name.lower() == wanted:
                return channel
        return None

    # -------------------------------------------------------------- mutations

    async def create_broadcast(
        self,
        name: str,
        member_ids: Iterable[str],
        creator_id: str,
    ) -> BroadcastChannel:
        """
        Create a broadcast channel; the creator is always a member.

        Raises:
            DuplicateChannelNameException: carrying the existing channel as ``data``
        """
        async with self._collection_lock:
            existing = self.find_broadcast_by_name(name)
            if existing is not None:
                raise DuplicateChannelNameException(data=existing.to_dict())

            members = [str(m) for m in member_ids]
            members.append(str(creator_id))
            channel = BroadcastChannel(id=str(uuid.uuid4()), name=name).with_members(members)

            await self._save(channel)

        logger.info(f"Channel created: id={channel.id} name={channel.name!r} members={len(channel.members)}")
        return channel

    async def get_or_create_direct(
        self,
        user_a: str,
        user_b: str,
        display_name: Optional[str] = None,
    ) -> tuple[DirectChannel, bool]:
        """
        Return the direct channel for the unordered pair, creating it if absent.

        Returns:
            Tuple of (channel, created)
        """
        channel_id = direct_channel_id(user_a, user_b)

        async with self._collection_lock:
            existing = self._channels.get(channel_id)
            if existing is not None:
                return existing, False

            channel = DirectChannel(
                id=channel_id,
                name=display_name or "DM",
                members=(str(user_a), str(user_b)),
            )
            await self._save(channel)

        logger.info(f"Direct channel created: id={channel_id}")
        return channel, True

    async def set_lock(self, channel_id: str, locked: bool) -> BroadcastChannel:
        def apply(channel: Channel) -> Channel:
            if not isinstance(channel, BroadcastChannel):
                raise InvalidOperationException(detail="Cannot lock/unlock DMs")
            return channel.with_lock(locked)

        return await self._mutate(channel_id, apply)

    async def rename(self, channel_id: str, name: str) -> Channel:
        """
        Rename a broadcast channel.

        Names stay unique among broadcast channels, compared case-insensitively;
        renaming to the channel's own name (any case) is allowed.
        """
        async with self._collection_lock:
            def apply(channel: Channel) -> Channel:
                if not isinstance(channel, BroadcastChannel):
                    raise InvalidOperationException(detail="Cannot rename DMs")
                clash = self.find_broadcast_by_name(name)
                if clash is not None and clash.id != channel.id:
                    raise DuplicateChannelNameException(data=clash.to_dict())
                return channel.with_name(name)

            return await self._mutate(channel_id, apply)

    async def add_member(self, channel_id: str, user_id: str) -> Channel:
        def apply(channel: Channel) -> Channel:
            _require_broadcast(channel, "Cannot change DM members")
            if channel.has_member(user_id):
                return channel
            return channel.with_members([*channel.members, user_id])

        return await self._mutate(channel_id, apply)

    async def remove_member(self, channel_id: str, user_id: str) -> Channel:
        def apply(channel: Channel) -> Channel:
            _require_broadcast(channel, "Cannot change DM members")
            if not channel.has_member(user_id):
                return channel
            return channel.with_members([m for m in channel.members if m != str(user_id)])

        return await self._mutate(channel_id, apply)

    async def leave(self, channel_id: str, user_id: str) -> Channel:
        """Self-removal; permitted for any channel type."""
        def apply(channel: Channel) -> Channel:
            if not channel.has_member(user_id):
                return channel
            return channel.with_members([m for m in channel.members if m != str(user_id)])

        return await self._mutate(channel_id, apply)

    async def record_message(self, channel_id: str, preview: str) -> Channel:
        """Update the last-message preview and bump the unread counter."""
        return await self._mutate(channel_id, lambda channel: channel.with_last_message(preview))

    # -------------------------------------------------------------- internals

    def _lock_for(self, channel_id: str) -> asyncio.Lock:
        lock = self._channel_locks.get(channel_id)
        if lock is None:
            lock = self._channel_locks[channel_id] = asyncio.Lock()
        return lock

    async def _mutate(self, channel_id: str, apply: Callable[[Channel], Channel]) -> Channel:
        async with self._lock_for(channel_id):
            current = self.require(channel_id)
            updated = apply(current)
            if updated is current:
                return current
            await self._save(updated)
            return updated

    async def _save(self, channel: Channel) -> None:
        async with self._write_lock:
            snapshot = dict(self._channels)
            snapshot[channel.id] = channel
            records = [c.to_dict() for c in snapshot.values()]
            await run_in_threadpool(write_json_atomic, self._path, records)
            self._channels = snapshot


def _require_broadcast(channel: Channel, message: str) -> None:
    if not isinstance(channel, BroadcastChannel):
        raise InvalidOperationException(detail=message)
