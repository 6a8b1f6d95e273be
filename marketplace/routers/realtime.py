import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from marketplace.core.security import jwt_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws/{user_id}")
async def realtime_socket(websocket: WebSocket, user_id: int, token: str = ""):
    """Live channel for auth refresh and channel membership updates."""
    try:
        payload = jwt_manager.verify_token(token, "access")
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if payload.get("user_id") != user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = websocket.app.state.realtime
    await manager.connect(user_id, websocket, payload.get("role", "user"))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Realtime connection closed for user {user_id}")
    finally:
        manager.disconnect(user_id, websocket)
