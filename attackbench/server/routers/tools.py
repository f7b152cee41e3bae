from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from attackbench.server.state import ApplicationState, get_state
from attackbench.toolkit.installer import install_hint
from attackbench.toolkit.monitor import InstallResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tools", tags=["tools"])


class RefreshRequest(BaseModel):
    tools: Optional[List[str]] = None


def _describe(state: ApplicationState, name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "label": state.registry.label(name),
        "status": state.monitor.status_of(name).value,
        "can_install": state.registry.can_install(name),
        "installing": state.monitor.is_installing(name),
        "hint": install_hint(name),
        "message": state.monitor.message_of(name),
    }


@router.get("")
async def list_tools(state: ApplicationState = Depends(get_state)):
    """Every registry tool with its cached availability."""
    return [_describe(state, name) for name in state.registry.names()]


@router.post("/refresh")
async def refresh_tools(req: Optional[RefreshRequest] = None, state: ApplicationState = Depends(get_state)):
    names = req.tools if req else None
    # PATH scanning touches the filesystem; keep it off the loop
    statuses = await asyncio.to_thread(state.monitor.refresh, names)
    return {name: status.value for name, status in statuses.items()}


@router.get("/{name}")
async def get_tool(name: str, state: ApplicationState = Depends(get_state)):
    return _describe(state, name)


@router.post("/{name}/install", response_model=InstallResult)
async def install_tool(name: str, state: ApplicationState = Depends(get_state)):
    """Install a tool; joins an install that is already in flight."""
    logger.info(f"[API] Install requested for {name}")
    return await state.monitor.install(name)


@router.post("/{name}/cancel")
async def cancel_install(name: str, state: ApplicationState = Depends(get_state)):
    if not state.monitor.cancel_install(name):
        return Response(status_code=409)
    return Response(status_code=202)
