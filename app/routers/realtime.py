from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """Push channel for login / logout / qr / shutdown signals."""
    hub = websocket.app.state.runtime.hub
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
