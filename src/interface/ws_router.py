"""WebSocket endpoint streaming live list snapshots."""

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from src.core.config import Constants
from src.core.errors import ServiceError, classify_error, status_for
from src.services.container import Services
from src.services.identity_service import bearer_token


logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _deny(websocket: WebSocket, exc: ServiceError) -> None:
    """Reject the upgrade with an HTTP error, or close immediately when the server cannot."""
    error = classify_error(exc)
    if "websocket.http.response" in websocket.scope.get("extensions", {}):
        await websocket.send_denial_response(
            JSONResponse(status_code=status_for(error.kind), content=error.model_dump(mode="json"))
        )
        return
    await websocket.close(code=Constants.WS_CLOSE_POLICY_VIOLATION, reason=error.message)


@router.websocket("/ws/list/{list_id}")
async def list_socket(
    websocket: WebSocket,
    list_id: str,
    group_id: str = Query(default="", alias="groupId"),
    token: str = Query(default=""),
) -> None:
    """Push a full snapshot of the list on connect and after every change until disconnect."""
    services: Services = websocket.app.state.services
    token = token or bearer_token(websocket.headers.get("authorization"))

    try:
        binding = await services.gate.authorize(token, group_id, list_id)
    except ServiceError as e:
        logger.warning("live_connection_denied", extra={"list_id": list_id, "group_id": group_id, "kind": e.kind})
        await _deny(websocket, e)
        return

    await websocket.accept()
    try:
        viewer = await services.broadcaster.attach(binding, websocket.send_json)
    except ServiceError as e:
        logger.error("live_attach_failed", extra={"list_id": list_id, "error": e.message})
        await websocket.close(code=Constants.WS_CLOSE_INTERNAL_ERROR)
        return

    try:
        while True:
            # Clients only listen; inbound frames are read to notice the disconnect.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Live connection closed by client", extra={"uid": binding.uid, "list_id": list_id})
    finally:
        services.broadcaster.detach(viewer)
