"""Interfaces for the capabilities the negotiation driver depends on.

The driver never talks to a camera, a peer connection or a speech engine
directly; it goes through these so the concrete backends (aiortc, a browser
bridge, test fakes) can be swapped.
"""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence


class MediaAccessError(Exception):
    """Local media could not be acquired."""


class PermissionDenied(MediaAccessError):
    pass


class DeviceUnavailable(MediaAccessError):
    pass


class LocalMedia(ABC):
    @property
    @abstractmethod
    def tracks(self) -> Sequence[Any]:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop every local track."""
        raise NotImplementedError


class MediaCapture(ABC):
    @abstractmethod
    async def acquire(self, video: bool = True, audio: bool = True) -> LocalMedia:
        """Open the local camera/microphone.

        Raises PermissionDenied or DeviceUnavailable.
        """
        raise NotImplementedError


class NegotiationCapability(ABC):
    """A peer connection. Descriptions and candidates are plain dicts.

    Callbacks are assigned by the driver before negotiation starts.
    """

    on_ice_candidate: Optional[Callable[[dict], Awaitable[None]]] = None
    on_track: Optional[Callable[[Any], None]] = None
    on_connection_state: Optional[Callable[[str], Awaitable[None]]] = None

    @abstractmethod
    def add_track(self, track: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def create_offer(self) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def create_answer(self) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def set_local_description(self, description: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def set_remote_description(self, description: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_ice_candidate(self, candidate: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


class Transcriber(ABC):
    @abstractmethod
    def start(self, media: LocalMedia, on_text: Callable[[str], None]) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class SignalingChannel(ABC):
    @abstractmethod
    async def send(self, message: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[dict]:
        raise NotImplementedError
