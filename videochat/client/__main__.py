import argparse
import asyncio
import logging
import sys

from videochat.client.aiortc_backend import AiortcMediaCapture, AiortcNegotiation
from videochat.client.channel import WebSocketChannel
from videochat.client.driver import NegotiationDriver
from videochat.config import settings

logger = logging.getLogger("videochat.client")


async def run(url: str, room: str | None) -> int:
    channel = await WebSocketChannel(url).connect()
    driver = NegotiationDriver(channel, AiortcMediaCapture(), AiortcNegotiation)
    try:
        if not await driver.start():
            print(driver.error, file=sys.stderr)
            return 1

        if room:
            await driver.join_room(room)
        else:
            room = await driver.create_room()
        print(f"Room ID: {room}")

        await driver.run()
    finally:
        await driver.close()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Two-party video call client")
    parser.add_argument("--url", default=settings.SIGNALING_URL, help="Signaling server WebSocket URL")
    parser.add_argument("--room", default=None, help="Room ID to join (a new room is created when omitted)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)
    try:
        return asyncio.run(run(args.url, args.room))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
