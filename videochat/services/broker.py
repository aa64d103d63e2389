import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Optional, Set, Union

from pydantic import ValidationError

from videochat.models import PEER_JOINED, Answer, Candidate, Join, Offer, decode_inbound
from videochat.services.registry import RoomRegistry

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


class Participant:
    """One connected client: an opaque handle plus its outbound buffer.

    Deliveries are queued without blocking; a writer task drains the queue
    into the underlying transport so a slow peer only backs up its own queue.
    """

    def __init__(self, send: SendCallable, queue_size: int = 256):
        self.id = uuid.uuid4().hex
        self.closed = False
        self._send = send
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"writer-{self.id}")

    def deliver(self, message: dict) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"⚠️  Outbound queue full for client {self.id}, dropping {message.get('type')}")
            return False
        return True

    async def close(self):
        self.closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    async def _drain(self):
        while True:
            message = await self._queue.get()
            try:
                await self._send(message)
            except Exception as e:
                logger.error(f"❌ Error sending to client {self.id}: {e}")
                self.closed = True
                return

    def __repr__(self):
        return f"Participant({self.id})"


class SignalingBroker:
    """Room-scoped relay for offer/answer/candidate messages.

    Created once per process at startup and shut down with the app. Every
    registry read or write happens under ``_lock`` and deliveries to peers are
    enqueued while the lock is held, so a forwarded message always sees the
    membership produced by every join/leave handled before it.
    """

    def __init__(self, queue_size: int = 256):
        self.registry: RoomRegistry[Participant] = RoomRegistry()
        self._lock = asyncio.Lock()
        self._participants: Set[Participant] = set()
        self._queue_size = queue_size
        self._closed = False

    @property
    def participants(self) -> Set[Participant]:
        return set(self._participants)

    async def connect(self, send: SendCallable) -> Participant:
        if self._closed:
            raise RuntimeError("Signaling broker is shut down")
        participant = Participant(send, self._queue_size)
        async with self._lock:
            self._participants.add(participant)
        participant.start()
        logger.info(f"✅ Client {participant.id} connected")
        return participant

    async def receive(self, participant: Participant, raw: Union[str, bytes]):
        """Decode one raw frame and act on it. Malformed frames are dropped."""
        try:
            message = decode_inbound(raw)
        except ValidationError as e:
            logger.warning(f"⚠️  Dropping malformed frame from {participant.id}: {e.error_count()} error(s)")
            return
        await self.handle(participant, message)

    async def handle(self, participant: Participant, message: Union[Join, Offer, Answer, Candidate]):
        if participant.closed:
            return
        logger.debug(f"📨 Received {message.type} from {participant.id}")
        match message:
            case Join(room_id=room_id):
                await self._join(participant, room_id)
            case Offer() | Answer() | Candidate():
                await self._relay(participant, message.relay())

    async def disconnect(self, participant: Participant):
        async with self._lock:
            participant.closed = True
            room_id = self.registry.leave(participant)
            self._participants.discard(participant)
        await participant.close()
        if room_id is not None:
            logger.info(f"❌ Client {participant.id} left room {room_id}")
        else:
            logger.info(f"❌ Client {participant.id} disconnected")

    async def shutdown(self):
        self._closed = True
        for participant in self.participants:
            await self.disconnect(participant)
        self.registry.clear()
        logger.info("Signaling broker stopped")

    async def _join(self, participant: Participant, room_id: str):
        async with self._lock:
            if participant.closed:
                return
            previous = self.registry.join(room_id, participant)
            # The old room is not told about the move; clients only learn of
            # departures through their own negotiation timeouts.
            peers = self.registry.peers_of(room_id, excluding=participant)
            for peer in peers:
                peer.deliver(PEER_JOINED)
        if previous is not None:
            logger.info(f"🔀 Client {participant.id} moved from room {previous} to {room_id}")
        else:
            logger.info(f"✅ Client {participant.id} joined room {room_id} ({len(peers)} peer(s) notified)")

    async def _relay(self, participant: Participant, message: dict):
        async with self._lock:
            if participant.closed:
                return
            room_id = self.registry.room_of(participant)
            if room_id is None:
                logger.debug(f"Dropping {message['type']} from {participant.id}: not in a room")
                return
            for peer in self.registry.peers_of(room_id, excluding=participant):
                peer.deliver(message)
