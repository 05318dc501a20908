import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from medlink.relationship import RelationshipEvent

log = logging.getLogger(__name__)

router = APIRouter()
notification_sockets: dict[str, WebSocket] = {}


def _drop_socket(actor_id: str, ws: WebSocket):
    # a newer tab may have replaced this socket; leave that one registered
    if notification_sockets.get(actor_id) is ws:
        notification_sockets.pop(actor_id, None)

async def forward_event(event: RelationshipEvent):
    """Push a bus event to the sockets of both actors of the pair."""
    payload = {"type": event.kind.value, **event.to_dict()}
    for actor_id in {event.viewer_id, event.target_id}:
        if not actor_id:
            continue
        ws = notification_sockets.get(actor_id)
        if ws:
            try:
                await ws.send_json(payload)
            except Exception as e:
                log.info("Dropping notification socket for %s: %s", actor_id, e)
                _drop_socket(actor_id, ws)

@router.websocket("/ws/notifications")
async def websocket_notifications(ws: WebSocket):
    actor_id = ws.query_params.get("actor_id")
    if not actor_id:
        await ws.accept()
        await ws.close(code=4001)
        return
    notification_sockets[actor_id] = ws
    await ws.accept()
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        _drop_socket(actor_id, ws)
    except Exception:
        log.exception("Notification socket for %s failed", actor_id)
        _drop_socket(actor_id, ws)
        await ws.close(code=4003)
