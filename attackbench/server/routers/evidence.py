from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from attackbench.errors import ErrorCode, WorkbenchError
from attackbench.server.state import ApplicationState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evidence", tags=["evidence"])


class ExportRequest(BaseModel):
    # Subdirectory of the exports directory
    destination: Optional[str] = None
    archive: bool = False


def _export_destination(state: ApplicationState, destination: Optional[str]) -> Path:
    root = state.config.storage.exports_path.resolve()
    if not destination:
        return root
    resolved = (root / destination).resolve()
    if not resolved.is_relative_to(root):
        logger.warning(f"[API] Export outside {root} refused: {destination!r}")
        raise WorkbenchError(
            ErrorCode.EVIDENCE_EXPORT_DENIED,
            "Exports must stay inside the exports directory",
            details={"destination": destination, "exports_dir": str(root)},
        )
    return resolved


@router.get("")
async def list_packages(state: ApplicationState = Depends(get_state)):
    return [p.model_dump(mode="json") for p in state.evidence.list()]


@router.get("/stats")
async def statistics(state: ApplicationState = Depends(get_state)):
    return state.evidence.statistics()


@router.get("/{package_id}")
async def get_package(package_id: str, state: ApplicationState = Depends(get_state)):
    return state.evidence.get(package_id).model_dump(mode="json")


@router.get("/{package_id}/verify")
async def verify_package(package_id: str, state: ApplicationState = Depends(get_state)):
    package = state.evidence.get(package_id)
    files = await asyncio.to_thread(state.evidence.verify, package)
    return {"package_id": package_id, "intact": all(files.values()), "files": files}


@router.post("/{package_id}/export")
async def export_package(
    package_id: str,
    req: Optional[ExportRequest] = None,
    state: ApplicationState = Depends(get_state),
):
    req = req or ExportRequest()
    package = state.evidence.get(package_id)
    destination = _export_destination(state, req.destination)
    location = await asyncio.to_thread(state.evidence.export, package, destination, req.archive)
    return {"package_id": package_id, "location": str(location)}


@router.delete("/{package_id}")
async def delete_package(package_id: str, confirm: bool = False, state: ApplicationState = Depends(get_state)):
    """Irreversibly delete a package. Requires ?confirm=true."""
    if not confirm:
        raise WorkbenchError(
            ErrorCode.EVIDENCE_CONFIRMATION_REQUIRED,
            "Deleting evidence is irreversible; repeat the request with confirm=true",
            details={"package_id": package_id},
        )
    package = state.evidence.get(package_id)
    await state.evidence.delete(package)
    logger.info(f"[API] Evidence package {package_id} deleted")
    return {"package_id": package_id, "deleted": True}
