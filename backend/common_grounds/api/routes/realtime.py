"""WebSocket endpoint for live class rooms."""

import logging

from fastapi import APIRouter, Query, WebSocket

from common_grounds.api.deps import parse_bearer
from common_grounds.exceptions import InvalidTokenError, SessionExpiredError
from common_grounds.realtime import WS_AUTH_FAILED, ClassSocketSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def class_socket(websocket: WebSocket, token: str | None = Query(None)) -> None:
    """
    Authenticate once on connect, then serve room events until disconnect.

    The credential comes from `?token=` or an `Authorization: Bearer` header.
    """
    container = websocket.app.state.container
    token = token or parse_bearer(websocket.headers.get("authorization"))
    if not token:
        await websocket.close(code=WS_AUTH_FAILED, reason="Authentication error")
        return

    try:
        async with container.database.session() as db:
            claims = await container.auth.validate_session(db, token)
    except (InvalidTokenError, SessionExpiredError) as e:
        logger.info("Rejected socket: %s", e.message)
        await websocket.close(code=WS_AUTH_FAILED, reason="Authentication error")
        return

    await websocket.accept()
    await ClassSocketSession(websocket, claims.user_id, container).run()
