from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field, field_validator

from attackbench.data.models import AttackCategory
from attackbench.errors import WorkbenchError
from attackbench.server.state import ApplicationState, get_state
from attackbench.toolkit.vectors import AttackVector, get_vector, list_vectors, vectors_for_port
from attackbench.toolkit.vectors import validate_target as check_target

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attacks", tags=["attacks"])


class AttackRequest(BaseModel):
    vector: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1, max_length=253)
    port: int = Field(..., ge=1, le=65535)
    timeout: Optional[float] = Field(None, gt=0)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        try:
            return check_target(v)
        except WorkbenchError as e:
            logger.warning(f"Attack rejected: {e.message}: {v!r}")
            raise ValueError(e.message) from e


def _vector_dict(vector: AttackVector, state: ApplicationState) -> Dict[str, Any]:
    data = vector.model_dump(mode="json")
    data["missing_tools"] = sorted(state.monitor.missing(vector.required_tools))
    return data


@router.get("/vectors")
async def vectors(
    category: Optional[AttackCategory] = None,
    port: Optional[int] = None,
    state: ApplicationState = Depends(get_state),
):
    """Catalog, optionally narrowed to one category and/or vectors that fit a port."""
    selected = list_vectors(category)
    if port is not None:
        fitting = {v.name for v in vectors_for_port(port)}
        selected = [v for v in selected if v.name in fitting]
    return [_vector_dict(v, state) for v in selected]


@router.get("/vectors/{name}")
async def vector(name: str, state: ApplicationState = Depends(get_state)):
    return _vector_dict(get_vector(name), state)


@router.post("", status_code=202)
async def launch_attack(req: AttackRequest, state: ApplicationState = Depends(get_state)):
    """Start a session in the background. 412 if a required tool is missing."""
    logger.info(f"[API] Attack request: {req.vector} -> {req.target}:{req.port}")
    snapshot = state.manager.launch(get_vector(req.vector), req.target, req.port, timeout=req.timeout)
    return snapshot.model_dump(mode="json", exclude={"output"})


@router.get("/active")
async def active(state: ApplicationState = Depends(get_state)):
    return [s.model_dump(mode="json", exclude={"output"}) for s in state.manager.active_sessions()]


@router.get("/history")
async def history(state: ApplicationState = Depends(get_state)):
    return [s.model_dump(mode="json", exclude={"output"}) for s in state.manager.history()]


@router.delete("/history")
async def clear_history(state: ApplicationState = Depends(get_state)):
    return {"removed": state.manager.clear_history()}


@router.get("/{session_id}")
async def get_session(session_id: int, state: ApplicationState = Depends(get_state)):
    return state.manager.get_session(session_id).model_dump(mode="json")


@router.get("/{session_id}/output")
async def get_output(session_id: int, cursor: int = 0, state: ApplicationState = Depends(get_state)):
    """Polling fallback for the WebSocket stream."""
    lines, next_cursor, status = state.manager.output_since(session_id, cursor)
    return {"lines": list(lines), "cursor": next_cursor, "status": status.value}


@router.post("/{session_id}/stop")
async def stop_attack(session_id: int, state: ApplicationState = Depends(get_state)):
    if not state.manager.stop(session_id):
        return Response(status_code=409)
    return Response(status_code=202)


@router.get("/{session_id}/result")
async def get_result(session_id: int, state: ApplicationState = Depends(get_state)):
    result = state.manager.result_of(session_id)
    if result is None:
        return Response(status_code=204)
    data = result.model_dump(mode="json")
    data["evidence_package"] = state.package_for(session_id)
    return data
