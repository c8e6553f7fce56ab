"""
Presence tracking.

A user is online while they hold at least one live socket. The tracker keeps
a per-user connection count so that closing one tab does not mark a user
offline while another connection is still open.
"""

import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Process-local reference-counted online set."""

    def __init__(self):
        self._counts: Dict[str, int] = {}

    def connect(self, user_id: str) -> bool:
        """
        Count a new connection for ``user_id``.

        Returns:
            True if the user just came online (first connection)
        """
        count = self._counts.get(user_id, 0) + 1
        self._counts[user_id] = count
        return count == 1

    def disconnect(self, user_id: str) -> bool:
        """
        Release one connection of ``user_id``.

        Returns:
            True if the user just went offline (last connection closed)
        """
        count = self._counts.get(user_id, 0)
        if count <= 1:
            if count == 0:
                logger.warning(f"Presence release for unknown user {user_id}")
                return False
            del self._counts[user_id]
            return True
        self._counts[user_id] = count - 1
        return False

    def is_online(self, user_id: str) -> bool:
        return user_id in self._counts

    def connection_count(self, user_id: str) -> int:
        return self._counts.get(user_id, 0)

    def snapshot(self) -> List[str]:
        """Currently online user ids, sorted for stable output."""
        return sorted(self._counts)

    def clear(self):
        self._counts.clear()
