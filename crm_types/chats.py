"""
Channel and message DTOs for the chat API.

Wire format uses camelCase keys (``lastMessage``, ``chatId``) for
compatibility with existing frontends; Python attributes are snake_case.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

ChannelType = Literal["broadcast", "direct"]


class AttachmentGet(BaseModel):
    filename: str = Field(..., description="Original filename as uploaded")
    url: str = Field(..., description="Retrieval path of the stored blob")


class ChannelGet(BaseModel):
    id: str
    name: str
    type: ChannelType
    locked: bool = False
    last_message: str = Field("", alias="lastMessage")
    unread: int = 0
    members: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class MessageGet(BaseModel):
    id: int = Field(..., description="Sequence number, unique within its channel")
    chat_id: str = Field(..., alias="chatId")
    sender: str = Field(..., description="Display name of the sender")
    sender_id: Optional[str] = Field(None, alias="senderId")
    message: str = ""
    timestamp: str
    attachments: list[AttachmentGet] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ChannelCreate(BaseModel):
    name: Optional[str] = None
    members: list[str] = Field(default_factory=list)

    model_config = ConfigDict(coerce_numbers_to_str=True)


class ChannelLock(BaseModel):
    locked: bool = False


class ChannelRename(BaseModel):
    name: Optional[str] = None


class ChannelMembersUpdate(BaseModel):
    add: Optional[str] = None
    remove: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class DirectChannelCreate(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class PresenceGet(BaseModel):
    online_users: list[str] = Field(default_factory=list, alias="onlineUsers")

    model_config = ConfigDict(populate_by_name=True)
