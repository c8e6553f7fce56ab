"""
Repositories owning the chat state.

``ChannelStore`` and ``MessageStore`` keep their collections in memory,
serialize mutations per channel and persist through ``json_file``.
"""

from .channel_repo import ChannelStore
from .message_repo import MessageStore

__all__ = ["ChannelStore", "MessageStore"]
