import enum
import logging
import uuid
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from videochat.client.base import (
    LocalMedia,
    MediaAccessError,
    MediaCapture,
    NegotiationCapability,
    PermissionDenied,
    SignalingChannel,
    Transcriber,
)
from videochat.models import Answer, Candidate, Join, Offer, PeerJoined, decode_delivered

logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = (
    "Camera and microphone access is required for this app to work. "
    "Please enable permissions and try again."
)
DEVICE_MESSAGE = (
    "An error occurred while accessing your camera and microphone. "
    "Please make sure they are properly connected and try again."
)


class DriverState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_LOCAL_MEDIA = "awaiting-local-media"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


class NegotiationDriver:
    """Client side of the call: turns broker messages into peer-connection calls.

    Incoming messages are handled one at a time in arrival order. Whoever is
    already in the room when the other side joins gets ``peer-joined`` and
    sends the offer; the newcomer only answers.
    """

    def __init__(
        self,
        channel: SignalingChannel,
        capture: MediaCapture,
        negotiation_factory: Callable[[], NegotiationCapability],
        transcriber: Optional[Transcriber] = None,
    ):
        self.channel = channel
        self.capture = capture
        self.negotiation_factory = negotiation_factory
        self.transcriber = transcriber

        self.state = DriverState.IDLE
        self.room_id: Optional[str] = None
        self.media: Optional[LocalMedia] = None
        self.pc: Optional[NegotiationCapability] = None
        self.remote_tracks: List[Any] = []
        self.caption = ""
        self.error: Optional[str] = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> bool:
        """Acquire local media and prepare the peer connection.

        Returns False and sets ``error`` when the camera/microphone can't be opened.
        """
        if self.state is not DriverState.IDLE:
            return self.state is not DriverState.CLOSED

        self.state = DriverState.AWAITING_LOCAL_MEDIA
        try:
            self.media = await self.capture.acquire(video=True, audio=True)
        except PermissionDenied as e:
            logger.error(f"Media permission denied: {e}")
            self.error = PERMISSION_MESSAGE
            self.state = DriverState.IDLE
            return False
        except MediaAccessError as e:
            logger.error(f"Error accessing media devices: {e}")
            self.error = DEVICE_MESSAGE
            self.state = DriverState.IDLE
            return False

        self.error = None
        pc = self.negotiation_factory()
        pc.on_ice_candidate = self._on_local_candidate
        pc.on_track = self._on_remote_track
        pc.on_connection_state = self._on_connection_state
        for track in self.media.tracks:
            pc.add_track(track)
        self.pc = pc

        if self.transcriber is not None:
            self.transcriber.start(self.media, self._on_transcript)

        self.state = DriverState.NEGOTIATING
        return True

    async def retry(self) -> bool:
        self.error = None
        return await self.start()

    async def create_room(self) -> str:
        room_id = str(uuid.uuid4())
        await self.join_room(room_id)
        return room_id

    async def join_room(self, room_id: str) -> bool:
        if not room_id:
            return False
        self.room_id = room_id
        await self.channel.send(Join(room_id=room_id).model_dump(by_alias=True))
        logger.info(f"Joining room {room_id}")
        return True

    async def run(self):
        """Process broker messages until the channel closes."""
        async for data in self.channel:
            if self.state is DriverState.CLOSED:
                break
            await self.handle(data)

    async def close(self):
        """Tear everything down. Each step runs even if an earlier one fails."""
        if self.state is DriverState.CLOSED:
            return
        self.state = DriverState.CLOSED

        try:
            await self.channel.close()
        except Exception:
            logger.exception("Failed to disconnect from signaling server")

        if self.pc is not None:
            try:
                await self.pc.close()
            except Exception:
                logger.exception("Failed to close peer connection")

        if self.transcriber is not None:
            try:
                self.transcriber.stop()
            except Exception:
                logger.exception("Failed to stop transcription")

        if self.media is not None:
            try:
                self.media.stop()
            except Exception:
                logger.exception("Failed to stop local media tracks")

    # -- broker messages -----------------------------------------------------

    async def handle(self, data):
        if self.state is DriverState.CLOSED:
            return
        try:
            message = decode_delivered(data)
        except ValidationError as e:
            logger.warning(f"Ignoring unrecognised signaling message: {e.error_count()} error(s)")
            return

        try:
            match message:
                case PeerJoined():
                    await self._on_peer_joined()
                case Offer(offer=offer):
                    await self._on_offer(offer)
                case Answer(answer=answer):
                    await self._on_answer(answer)
                case Candidate(candidate=candidate):
                    await self._on_remote_candidate(candidate)
        except Exception:
            # one bad payload must not end the session
            logger.exception(f"Error handling {message.type} message")

    async def _on_peer_joined(self):
        logger.info("Peer joined the room")
        if self.pc is None or self.media is None:
            return
        offer = await self.pc.create_offer()
        await self.pc.set_local_description(offer)
        await self._send(Offer(offer=offer, room_id=self.room_id))

    async def _on_offer(self, offer):
        if self.pc is None:
            logger.debug("Offer received before local media was ready")
            return
        await self.pc.set_remote_description(offer)
        answer = await self.pc.create_answer()
        await self.pc.set_local_description(answer)
        await self._send(Answer(answer=answer, room_id=self.room_id))

    async def _on_answer(self, answer):
        if self.pc is None:
            return
        await self.pc.set_remote_description(answer)

    async def _on_remote_candidate(self, candidate):
        if self.pc is None:
            return
        await self.pc.add_ice_candidate(candidate)

    # -- capability events ---------------------------------------------------

    async def _on_local_candidate(self, candidate: dict):
        if self.state is DriverState.CLOSED:
            return
        await self._send(Candidate(candidate=candidate, room_id=self.room_id))

    def _on_remote_track(self, track):
        self.remote_tracks.append(track)

    async def _on_connection_state(self, state: str):
        logger.info(f"Peer connection state: {state}")
        if state == "connected" and self.state is DriverState.NEGOTIATING:
            self.state = DriverState.CONNECTED

    def _on_transcript(self, text: str):
        self.caption = text

    async def _send(self, message):
        await self.channel.send(message.model_dump(by_alias=True))
