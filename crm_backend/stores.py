"""
Lifecycle and FastAPI dependencies for the chat stores.

The stores are process-wide: ``init_stores`` builds and loads them at
startup (or in tests), the ``get_*`` dependencies hand them to endpoints.
"""

import logging
from pathlib import Path
from typing import Optional

from crm_backend.exceptions import InternalServerException
from crm_backend.repositories import ChannelStore, MessageStore
from crm_backend.settings import settings

logger = logging.getLogger(__name__)

_channel_store: Optional[ChannelStore] = None
_message_store: Optional[MessageStore] = None


def init_stores(data_dir: Optional[Path | str] = None) -> tuple[ChannelStore, MessageStore]:
    """Create and load both stores from ``data_dir`` (default: settings.CHAT_DATA_DIR)."""
    global _channel_store, _message_store

    data_dir = Path(data_dir or settings.CHAT_DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)

    channel_store = ChannelStore(data_dir)
    message_store = MessageStore(data_dir)
    channel_store.load()
    message_store.load()

    _channel_store, _message_store = channel_store, message_store
    logger.info(f"Chat stores initialized at {data_dir}")
    return channel_store, message_store


def get_channel_store() -> ChannelStore:
    if _channel_store is None:
        raise InternalServerException(detail="Channel store not initialized")
    return _channel_store


def get_message_store() -> MessageStore:
    if _message_store is None:
        raise InternalServerException(detail="Message store not initialized")
    return _message_store
