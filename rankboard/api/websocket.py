"""
Live leaderboard socket: `/ws/leaderboard`.

Protocol
--------
Handshake must carry a credential, either `?token=...` or an
`Authorization` header. Only its presence is checked here; token
verification belongs to the identity provider and is not performed by this
service. Connections without one are closed with 1008 (policy violation).

Client frames::

    {"action": "join-event", "eventId": "hackathon-2024"}
    {"action": "leave-event", "eventId": "hackathon-2024"}

Server frames::

    {"type": "joined", "eventId": "..."}
    {"type": "left", "eventId": "..."}
    {"type": "score-updated", "data": {"eventId", "userId", "score", "rank", "achievements"}}
    {"type": "error", "message": "..."}
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from rankboard.core.logging.logger import LogContext, get_logger
from rankboard.modules.realtime.hub import ChannelHub

logger = get_logger(__name__)

router = APIRouter()


def _handshake_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token

    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return authorization.strip() or None


async def _handle_frame(
    websocket: WebSocket, hub: ChannelHub, frame: Any
) -> Dict[str, Any]:
    if not isinstance(frame, dict):
        return {"type": "error", "message": "Frame must be a JSON object"}

    action = frame.get("action")
    event_id = frame.get("eventId")

    if action not in ("join-event", "leave-event"):
        return {"type": "error", "message": f"Unknown action: {action}"}

    if not isinstance(event_id, str) or not event_id.strip():
        return {"type": "error", "message": "eventId is required"}

    if action == "join-event":
        hub.join(websocket, event_id)
        return {"type": "joined", "eventId": event_id}

    hub.leave(websocket, event_id)
    return {"type": "left", "eventId": event_id}


@router.websocket("/ws/leaderboard")
async def leaderboard_socket(websocket: WebSocket) -> None:
    if not _handshake_token(websocket):
        logger.info("Socket rejected: no credential supplied")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub: ChannelHub = websocket.app.state.channel_hub
    await websocket.accept()

    async with LogContext(route="WS /ws/leaderboard", component="realtime"):
        logger.debug("Socket connected")
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except ValueError:
                    reply: Dict[str, Any] = {"type": "error", "message": "Invalid JSON"}
                else:
                    reply = await _handle_frame(websocket, hub, frame)
                await websocket.send_json(reply)
        except WebSocketDisconnect:
            logger.debug("Socket disconnected")
        finally:
            hub.drop(websocket)
