"""
Success envelopes for the HTTP API.

Every successful response carries ``success: true`` and its payload under
``data``; errors use ``crm_types.errors.ErrorResponse``.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from crm_types.chats import ChannelGet

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class DirectChannelResponse(BaseModel):
    """The DM endpoint also exposes the channel id at top level."""
    success: bool = True
    id: str
    created: bool = False
    data: Optional[ChannelGet] = None
