from typing import Annotated

from fastapi import APIRouter, Depends

from crm_backend.permissions.auth import get_current_principal, require_admin
from crm_backend.permissions.principal import Principal
from crm_backend.websocket.connection_manager import manager
from crm_types.chats import PresenceGet
from crm_types.responses import ApiResponse

system_router = APIRouter()


@system_router.get("/presence", response_model=ApiResponse[PresenceGet])
async def get_presence(
    principal: Annotated[Principal, Depends(get_current_principal)],
):
    """Users with at least one open real-time connection."""
    return {"data": {"onlineUsers": manager.online_users()}}


@system_router.get("/system/ws-metrics")
async def get_ws_metrics(
    principal: Annotated[Principal, Depends(require_admin)],
):
    """WebSocket connection and delivery counters (admin only)."""
    return {"success": True, "data": manager.get_metrics()}
