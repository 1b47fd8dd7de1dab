from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from ams_actions.auth.roles import claims_user_id
from ams_actions.core.supabase_jwt import verify_websocket_token
from ams_actions.realtime.emitter import ConnectionRegistry

router = APIRouter()
token_query = Query(default=None)


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str | None = token_query) -> None:
    try:
        user_id = claims_user_id(await run_in_threadpool(verify_websocket_token, token))
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry: ConnectionRegistry = websocket.app.state.connection_registry
    await websocket.accept()
    await registry.connect(user_id, websocket)
    try:
        # Inbound frames are keep-alives only.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await registry.disconnect(user_id, websocket)
