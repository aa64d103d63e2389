"""In-memory room membership bookkeeping.

Nothing here is thread- or task-safe on its own; the signaling broker
serializes every call under its lock.
"""
import logging
from typing import Dict, Generic, Hashable, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=Hashable)


class RoomRegistry(Generic[P]):
    def __init__(self):
        self._rooms: Dict[str, Set[P]] = {}
        self._room_of: Dict[P, str] = {}

    def join(self, room_id: str, participant: P) -> Optional[str]:
        """Put ``participant`` in ``room_id``, creating the room if needed.

        A participant already in another room is moved; the previous room id
        is returned so the caller can log it. Re-joining the same room is a no-op.
        """
        previous = self._room_of.get(participant)
        if previous == room_id:
            return None
        if previous is not None:
            self._discard(previous, participant)
        self._rooms.setdefault(room_id, set()).add(participant)
        self._room_of[participant] = room_id
        return previous

    def leave(self, participant: P) -> Optional[str]:
        room_id = self._room_of.pop(participant, None)
        if room_id is not None:
            self._discard(room_id, participant)
        return room_id

    def peers_of(self, room_id: str, excluding: Optional[P] = None) -> Set[P]:
        return {p for p in self._rooms.get(room_id, ()) if p != excluding}

    def room_of(self, participant: P) -> Optional[str]:
        return self._room_of.get(participant)

    def members(self, room_id: str) -> Set[P]:
        return set(self._rooms.get(room_id, ()))

    def rooms(self) -> list[str]:
        return list(self._rooms)

    def clear(self):
        self._rooms.clear()
        self._room_of.clear()

    def __len__(self) -> int:
        return len(self._rooms)

    def _discard(self, room_id: str, participant: P):
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(participant)
        if not members:
            del self._rooms[room_id]
            logger.info(f"🗑️  Room {room_id} is now empty")
