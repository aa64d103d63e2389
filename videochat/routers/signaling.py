from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

from videochat.services.broker import SignalingBroker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["signaling"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    broker: SignalingBroker = websocket.app.state.broker
    await websocket.accept()
    try:
        participant = await broker.connect(websocket.send_json)
    except RuntimeError as e:
        logger.warning(f"Refusing connection: {e}")
        await websocket.close(code=1012)
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await broker.receive(participant, raw)

    except WebSocketDisconnect:
        logger.info(f"Client {participant.id} closed the connection")
    except Exception as e:
        logger.error(f"❌ Error in websocket: {e}")
    finally:
        await broker.disconnect(participant)
