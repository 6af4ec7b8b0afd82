"""
WebSocket route streaming TASK_UPDATE envelopes.

Clients connect with ``?token=<jwt>``. Connections with a missing, invalid
or expired token, malformed claims, or a role outside the subscriber roles
are closed with 1008 (policy violation). Only managers receive updates.
"""

from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger

from rsf_queue.core.container import ServiceContainer
from rsf_queue.exceptions import AuthenticationError
from rsf_queue.security.constants import KNOWN_ROLES

router = APIRouter()


async def _reject(websocket: WebSocket, reason: str) -> None:
    logger.warning(f"WebSocket connection rejected: {reason}")
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=reason)


@router.websocket("/ws/tasks")
async def task_updates_endpoint(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    """task status WebSocket endpoint"""
    services: ServiceContainer = websocket.app.state.services
    await websocket.accept()

    if not token:
        await _reject(websocket, "Authentication token missing.")
        return

    try:
        user = services.token_verifier.verify(token)
    except AuthenticationError as exc:
        await _reject(websocket, exc.message)
        return

    if user.role not in KNOWN_ROLES or not services.broadcaster.can_subscribe(user):
        await _reject(websocket, f"Forbidden: role '{user.role}' may not subscribe.")
        return

    services.broadcaster.register(websocket, user)
    try:
        while True:
            # clients have nothing to say; reading keeps the disconnect observable
            message = await websocket.receive_text()
            logger.debug(f"Ignoring message from {user.username}: {message[:100]}")
    except WebSocketDisconnect:
        pass
    finally:
        services.broadcaster.unregister(websocket)
