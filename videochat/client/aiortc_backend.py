"""aiortc-backed media capture and peer connection."""
import logging
import platform
from typing import Any, List, Optional, Sequence

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from videochat.client.base import (
    DeviceUnavailable,
    LocalMedia,
    MediaAccessError,
    MediaCapture,
    NegotiationCapability,
    PermissionDenied,
)
from videochat.config import Settings, ice_servers, settings

logger = logging.getLogger(__name__)

# (device, format) per platform when nothing is configured
_DEFAULT_VIDEO = {
    "Linux": ("/dev/video0", "v4l2"),
    "Darwin": ("default:none", "avfoundation"),
}
_DEFAULT_AUDIO = {
    "Linux": ("default", "pulse"),
    "Darwin": ("none:default", "avfoundation"),
}


def rtc_configuration(cfg: Settings = settings) -> RTCConfiguration:
    servers = [
        RTCIceServer(urls=s["urls"], username=s.get("username"), credential=s.get("credential"))
        for s in ice_servers(cfg)
    ]
    return RTCConfiguration(iceServers=servers)


class PlayerMedia(LocalMedia):
    def __init__(self, players: Sequence[Any]):
        self._players = list(players)
        self._tracks: List[Any] = []
        for player in self._players:
            for track in (player.video, player.audio):
                if track is not None:
                    self._tracks.append(track)

    @property
    def tracks(self) -> Sequence[Any]:
        return list(self._tracks)

    def stop(self) -> None:
        for track in self._tracks:
            track.stop()


class AiortcMediaCapture(MediaCapture):
    def __init__(self, cfg: Settings = settings):
        system = platform.system()
        self.video = (cfg.VIDEO_DEVICE, cfg.VIDEO_FORMAT) if cfg.VIDEO_DEVICE else _DEFAULT_VIDEO.get(system)
        self.audio = (cfg.AUDIO_DEVICE, cfg.AUDIO_FORMAT) if cfg.AUDIO_DEVICE else _DEFAULT_AUDIO.get(system)

    async def acquire(self, video: bool = True, audio: bool = True) -> LocalMedia:
        from aiortc.contrib.media import MediaPlayer  # lazy import
        from av.error import FFmpegError

        wanted = []
        if video:
            wanted.append(("camera", self.video))
        if audio:
            wanted.append(("microphone", self.audio))

        players = []
        try:
            for kind, source in wanted:
                if source is None:
                    raise DeviceUnavailable(f"No {kind} configured for {platform.system()}")
                device, fmt = source
                try:
                    players.append(MediaPlayer(device, format=fmt))
                except PermissionError as e:
                    raise PermissionDenied(f"Access to {kind} {device} denied") from e
                except (OSError, ValueError, FFmpegError) as e:
                    raise DeviceUnavailable(f"Could not open {kind} {device}: {e}") from e
                logger.info(f"Opened {kind} {device}")
        except MediaAccessError:
            # release whatever did open before the failure
            PlayerMedia(players).stop()
            raise
        return PlayerMedia(players)


class AiortcNegotiation(NegotiationCapability):
    def __init__(self, configuration: Optional[RTCConfiguration] = None):
        self.pc = RTCPeerConnection(configuration or rtc_configuration())

        @self.pc.on("track")
        def _on_track(track):
            logger.info(f"Remote {track.kind} track received")
            if self.on_track is not None:
                self.on_track(track)

        @self.pc.on("connectionstatechange")
        async def _on_state():
            if self.on_connection_state is not None:
                await self.on_connection_state(self.pc.connectionState)

    def add_track(self, track: Any) -> None:
        self.pc.addTrack(track)

    async def create_offer(self) -> dict:
        offer = await self.pc.createOffer()
        return {"sdp": offer.sdp, "type": offer.type}

    async def create_answer(self) -> dict:
        answer = await self.pc.createAnswer()
        return {"sdp": answer.sdp, "type": answer.type}

    async def set_local_description(self, description: dict) -> None:
        await self.pc.setLocalDescription(RTCSessionDescription(sdp=description["sdp"], type=description["type"]))
        # aiortc gathers candidates here and never trickles them, so the SDP
        # handed to the peer must be the one that now carries them.
        description["sdp"] = self.pc.localDescription.sdp

    async def set_remote_description(self, description: dict) -> None:
        await self.pc.setRemoteDescription(RTCSessionDescription(sdp=description["sdp"], type=description["type"]))

    async def add_ice_candidate(self, candidate: dict) -> None:
        line = candidate.get("candidate") or ""
        if not line:
            # end-of-candidates marker
            return
        if line.startswith("candidate:"):
            line = line[len("candidate:"):]
        ice = candidate_from_sdp(line)
        ice.sdpMid = candidate.get("sdpMid")
        ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self.pc.addIceCandidate(ice)

    async def close(self) -> None:
        await self.pc.close()
