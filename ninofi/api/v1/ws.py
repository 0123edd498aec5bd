"""WebSocket endpoint for real-time notifications."""

from __future__ import annotations

import json
from collections import defaultdict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ninofi.common.logging import get_logger
from ninofi.common.security import decode_token

router = APIRouter(tags=["WebSocket"])

logger = get_logger("ws")


class ConnectionManager:
    """Open sockets keyed by user id; a user may have several devices connected."""

    def __init__(self) -> None:
        self.active: dict[str, list[WebSocket]] = defaultdict(list)

    async def connect(self, user_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self.active[user_id].append(ws)
        logger.info("WebSocket connected: user=%s (total=%d)", user_id, len(self.active[user_id]))

    def disconnect(self, user_id: str, ws: WebSocket) -> None:
        if ws in self.active.get(user_id, []):
            self.active[user_id].remove(ws)
        if user_id in self.active and not self.active[user_id]:
            del self.active[user_id]
        logger.info("WebSocket disconnected: user=%s", user_id)

    async def send_to_user(self, user_id: str, message: dict) -> int:
        """Push ``message`` to every socket of the user; returns how many received it."""
        sockets = self.active.get(user_id)
        if not sockets:
            return 0
        delivered = 0
        dead = []
        for ws in sockets:
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as e:
                logger.debug("Dropping dead socket for user %s: %s", user_id, e)
                dead.append(ws)
        for ws in dead:
            self.disconnect(user_id, ws)
        return delivered

    @property
    def connected_users(self) -> int:
        return len(self.active)


manager = ConnectionManager()


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """Authenticate via token query param, then stream notifications."""
    token = ws.query_params.get("token", "")
    try:
        payload = decode_token(token)
    except ValueError:
        await ws.close(code=4001, reason="Invalid token")
        return

    user_id = payload.get("sub", "")
    if not user_id or payload.get("type") != "access":
        await ws.close(code=4001, reason="Invalid token")
        return

    await manager.connect(user_id, ws)
    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        manager.disconnect(user_id, ws)


async def notify_user(user_id: str, notification_type: str, data: dict) -> int:
    """Send a real-time notification to a user via WebSocket."""
    return await manager.send_to_user(user_id, {
        "type": "notification",
        "notification_type": notification_type,
        "data": data,
    })
