import json
import logging
from typing import AsyncIterator

import websockets

from videochat.client.base import SignalingChannel

logger = logging.getLogger(__name__)


class WebSocketChannel(SignalingChannel):
    """JSON-over-WebSocket connection to the signaling broker."""

    def __init__(self, url: str):
        self.url = url
        self.ws = None

    async def connect(self) -> "WebSocketChannel":
        self.ws = await websockets.connect(self.url)
        logger.info(f"Connected to signaling server {self.url}")
        return self

    async def send(self, message: dict) -> None:
        if self.ws is None:
            raise RuntimeError("Signaling channel is not connected")
        await self.ws.send(json.dumps(message))

    async def close(self) -> None:
        if self.ws is not None:
            await self.ws.close()
            self.ws = None

    async def __aiter__(self) -> AsyncIterator[dict]:
        ws = self.ws
        if ws is None:
            return
        try:
            async for raw in ws:
                try:
                    yield json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON frame from signaling server")
        except websockets.ConnectionClosed:
            logger.info("Signaling connection closed")
