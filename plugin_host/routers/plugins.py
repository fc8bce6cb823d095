"""Plugin and message bus administration REST API endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from plugin_host.constants import HISTORY_PAGE_SIZE
from plugin_host.core import Core
from plugin_host.dependencies import get_core
from plugin_host.errors import PluginNotRegisteredError, PluginStateError, RequestTimeoutError
from plugin_host.utils import message_stream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["plugins"])


class MessageSendRequest(BaseModel):
    """Request body for publishing a message on the bus."""

    payload: Any = None
    target: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class MessageRequestRequest(MessageSendRequest):
    """Request body for a request/reply round trip."""

    timeout: Optional[float] = None


@router.get("/plugins")
async def list_plugins(core: Core = Depends(get_core)):
    """List all registered plugins and their status."""
    return {"plugins": core.list_plugins()}


@router.get("/plugins/routes")
async def list_routes(core: Core = Depends(get_core)):
    """List routes and navigation contributed by plugins."""
    return {
        "routes": [route.to_dict() for route in core.routes.get_all_routes()],
        "navigation": [
            {"id": item.id, "label": item.label, "path": item.path, "order": item.order}
            for item in core.routes.get_navigation()
        ],
    }


@router.get("/plugins/{plugin_id}")
async def get_plugin(plugin_id: str, core: Core = Depends(get_core)):
    """Get detailed information about a specific plugin."""
    info = core.get_plugin_info(plugin_id)
    if not info:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    return info


@router.post("/plugins/{plugin_id}/enable")
async def enable_plugin(plugin_id: str, core: Core = Depends(get_core)):
    """Enable a plugin (runs its on_enable hook)."""
    try:
        instance = await core.enable_plugin(plugin_id)
    except PluginNotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    except PluginStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "message": f"Plugin '{plugin_id}' enabled",
        "plugin": instance.to_dict(),
    }


@router.post("/plugins/{plugin_id}/disable")
async def disable_plugin(plugin_id: str, core: Core = Depends(get_core)):
    """Disable a plugin (runs its on_disable hook)."""
    try:
        instance = await core.disable_plugin(plugin_id)
    except PluginNotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    except PluginStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "message": f"Plugin '{plugin_id}' disabled",
        "plugin": instance.to_dict(),
    }


@router.delete("/plugins/{plugin_id}")
async def unregister_plugin(plugin_id: str, core: Core = Depends(get_core)):
    """Tear down and remove a plugin."""
    try:
        await core.registry.unregister(plugin_id)
    except PluginNotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    except PluginStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": f"Plugin '{plugin_id}' unregistered"}


@router.get("/messages/history")
async def message_history(
    type: Optional[str] = Query(None, description="Type pattern, e.g. 'client.*'"),
    limit: int = Query(HISTORY_PAGE_SIZE, ge=1, le=1000),
    core: Core = Depends(get_core),
):
    """Most recent messages on the bus."""
    return {"messages": [m.to_dict() for m in core.messages.get_history(type, limit)]}


@router.get("/messages/stream")
async def stream_messages(
    type: str = Query("*", description="Type pattern, e.g. 'inventory.*'"),
    core: Core = Depends(get_core),
):
    """Live feed of bus messages as Server-Sent Events."""
    return EventSourceResponse(message_stream(core.messages, type), media_type="text/event-stream")


@router.post("/messages/{message_type}")
async def send_message(message_type: str, body: MessageSendRequest, core: Core = Depends(get_core)):
    """Publish a message (fire-and-forget)."""
    core.messages.send(message_type, body.payload, target=body.target, meta=body.meta)
    return {"message": f"Sent '{message_type}'"}


@router.post("/messages/{message_type}/request")
async def request_message(message_type: str, body: MessageRequestRequest, core: Core = Depends(get_core)):
    """Publish a message and wait for the handlers' result."""
    try:
        result = await core.messages.request(
            message_type,
            body.payload,
            target=body.target,
            meta=body.meta,
            timeout=body.timeout,
        )
    except RequestTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    return {"result": result}
