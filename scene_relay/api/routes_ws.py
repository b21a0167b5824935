from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
import logging

from scene_relay.api.deps import get_commands_ws, get_relay_ws

log = logging.getLogger("ws")

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    relay=Depends(get_relay_ws),
    commands=Depends(get_commands_ws),
):
    await websocket.accept()
    log.info("ws_connected")

    # the relay closes the socket itself when the initial send fails
    if not await relay.join(websocket):
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            # text and binary frames are both parsed as JSON
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue

            # runs in its own task; a slow device call does not stall this loop
            commands.submit(raw)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.warning("ws_connection_closed", extra={"error": str(e)})
    finally:
        await relay.leave(websocket)
        log.info("ws_disconnected")
