from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from attackbench.errors import SessionNotFound

router = APIRouter(prefix="/ws", tags=["realtime"])

logger = logging.getLogger(__name__)

# Seconds between polls of a session's log
POLL_INTERVAL = 0.2


@router.websocket("/attacks/{session_id}")
async def ws_attack_output(websocket: WebSocket, session_id: int):
    """
    Stream one session's output.

    Query params:
        cursor: index of the first line to send (replay from 0 by default)

    Messages:
        {"type": "output", "lines": [...], "cursor": n}
        {"type": "finished", "status": "...", "result": {...}}
    """
    state = websocket.app.state.workbench
    await websocket.accept()

    try:
        cursor = max(0, int(websocket.query_params.get("cursor", "0")))
    except ValueError:
        cursor = 0

    logger.info(f"[WebSocket] Client attached to session {session_id} at cursor {cursor}")
    try:
        while True:
            try:
                lines, cursor, status = state.manager.output_since(session_id, cursor)
            except SessionNotFound as e:
                await websocket.send_json({"type": "error", **e.to_dict()})
                await websocket.close(code=4404)
                return

            if lines:
                await websocket.send_json({"type": "output", "lines": list(lines), "cursor": cursor})

            # Status is read after the lines, so a terminal status means the log is complete
            if status.is_terminal:
                result = state.manager.result_of(session_id)
                if result is None:
                    await asyncio.sleep(POLL_INTERVAL)
                    continue
                await websocket.send_json({
                    "type": "finished",
                    "status": status.value,
                    "result": result.model_dump(mode="json", exclude={"output"}),
                })
                await websocket.close()
                return

            await asyncio.sleep(POLL_INTERVAL)
    except WebSocketDisconnect:
        logger.debug(f"[WebSocket] Client detached from session {session_id}")
