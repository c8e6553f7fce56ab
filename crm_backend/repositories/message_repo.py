"""
Message store: ordered message history per channel.

Each channel's history lives in ``messages/<quoted channel id>.json``.
Appends to one channel are serialized, so sequence numbers are exactly
1..N in append order.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable
from urllib.parse import quote, unquote

from starlette.concurrency import run_in_threadpool

from crm_backend.model.chat import Message
from crm_backend.repositories.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

MESSAGES_DIR = "messages"


def message_file_name(channel_id: str) -> str:
    return f"{quote(channel_id, safe='')}.json"


class MessageStore:
    """Owner of all per-channel message lists."""

    def __init__(self, data_dir: Path | str):
        self._dir = Path(data_dir) / MESSAGES_DIR
        self._messages: dict[str, list[Message]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def load(self) -> int:
        """Load every channel's history from disk."""
        self._messages = {}
        if not self._dir.exists():
            return 0

        total = 0
        for path in sorted(self._dir.glob("*.json")):
            channel_id = unquote(path.stem)
            records = read_json(path, default=[])
            self._messages[channel_id] = [Message.from_dict(r) for r in records]
            total += len(records)

        logger.info(f"Loaded {total} messages in {len(self._messages)} channels from {self._dir}")
        return total

    def messages_for(self, channel_id: str) -> list[Message]:
        return list(self._messages.get(channel_id, []))

    async def append(self, channel_id: str, build: Callable[[int], Message]) -> Message:
        """
        Append a message built from the next sequence number.

        Args:
            channel_id: Target channel
            build: Called with the sequence number (current length + 1)

        Returns:
            The stored message
        """
        async with self._lock_for(channel_id):
            current = self._messages.get(channel_id, [])
            message = build(len(current) + 1)
            updated = [*current, message]

            path = self._dir / message_file_name(channel_id)
            await run_in_threadpool(write_json_atomic, path, [m.to_dict() for m in updated])

            self._messages[channel_id] = updated

        logger.debug(f"Message {message.id} appended to channel {channel_id}")
        return message

    def _lock_for(self, channel_id: str) -> asyncio.Lock:
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = self._locks[channel_id] = asyncio.Lock()
        return lock
