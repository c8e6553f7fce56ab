"""
Domain model for channels and messages.

``Channel`` is a tagged variant: ``BroadcastChannel`` carries the lock flag,
``DirectChannel`` has none, so a locked direct channel cannot be built.
Records are converted to and from the on-disk/wire dictionaries with
``to_dict``/``from_dict``.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

BROADCAST = "broadcast"
DIRECT = "direct"

# Type names written by older deployments
_LEGACY_TYPES = {"channel": BROADCAST, "dm": DIRECT}

DIRECT_ID_PREFIX = "dm-"


def direct_channel_id(user_a: str, user_b: str) -> str:
    """Deterministic id for the direct channel between two users (order-free)."""
    first, second = sorted([str(user_a), str(user_b)])
    return f"{DIRECT_ID_PREFIX}{first}-{second}"


def _unique(members) -> list[str]:
    seen = set()
    result = []
    for member in members or []:
        member = str(member)
        if member not in seen:
            seen.add(member)
            result.append(member)
    return result


@dataclass(frozen=True)
class _ChannelBase:
    id: str
    name: str
    members: tuple[str, ...] = ()
    last_message: str = ""
    unread: int = 0

    type: ClassVar[str]

    def has_member(self, user_id: str) -> bool:
        return str(user_id) in self.members

    def with_members(self, members) -> "Channel":
        return replace(self, members=tuple(_unique(members)))

    def with_last_message(self, preview: str) -> "Channel":
        return replace(self, last_message=preview, unread=self.unread + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "locked": getattr(self, "locked", False),
            "lastMessage": self.last_message,
            "unread": self.unread,
            "members": list(self.members),
        }


@dataclass(frozen=True)
class BroadcastChannel(_ChannelBase):
    locked: bool = False

    type: ClassVar[str] = BROADCAST

    def with_lock(self, locked: bool) -> "BroadcastChannel":
        return replace(self, locked=bool(locked))

    def with_name(self, name: str) -> "BroadcastChannel":
        return replace(self, name=name)


@dataclass(frozen=True)
class DirectChannel(_ChannelBase):
    type: ClassVar[str] = DIRECT


Channel = Union[BroadcastChannel, DirectChannel]


def channel_from_dict(record: dict[str, Any]) -> Channel:
    """Build a channel from its persisted record."""
    channel_type = record.get("type", BROADCAST)
    channel_type = _LEGACY_TYPES.get(channel_type, channel_type)

    common = dict(
        id=str(record["id"]),
        name=record.get("name") or "",
        members=tuple(_unique(record.get("members"))),
        last_message=record.get("lastMessage") or "",
        unread=int(record.get("unread") or 0),
    )

    if channel_type == BROADCAST:
        return BroadcastChannel(locked=bool(record.get("locked", False)), **common)
    if channel_type == DIRECT:
        return DirectChannel(**common)

    raise ValueError(f"Unknown channel type: {channel_type!r}")


@dataclass(frozen=True)
class Attachment:
    filename: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "url": self.url}


@dataclass(frozen=True)
class Message:
    id: int
    chat_id: str
    sender: str
    message: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    attachments: tuple[Attachment, ...] = ()
    sender_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chatId": self.chat_id,
            "sender": self.sender,
            "senderId": self.sender_id,
            "message": self.message,
            "timestamp": self.timestamp,
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Message":
        return cls(
            id=int(record["id"]),
            chat_id=str(record["chatId"]),
            sender=record.get("sender") or "User",
            sender_id=record.get("senderId"),
            message=record.get("message") or "",
            timestamp=record.get("timestamp") or "",
            attachments=tuple(
                Attachment(filename=a["filename"], url=a["url"])
                for a in record.get("attachments") or []
            ),
        )
