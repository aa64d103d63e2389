from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Join(_Message):
    type: Literal["join"] = "join"
    room_id: str = Field(alias="roomId", description="Room to enter")


class PeerJoined(_Message):
    type: Literal["peer-joined"] = "peer-joined"


class Offer(_Message):
    type: Literal["offer"] = "offer"
    offer: Any = None
    room_id: Optional[str] = Field(default=None, alias="roomId")

    def relay(self) -> dict:
        return {"type": self.type, "offer": self.offer}


class Answer(_Message):
    type: Literal["answer"] = "answer"
    answer: Any = None
    room_id: Optional[str] = Field(default=None, alias="roomId")

    def relay(self) -> dict:
        return {"type": self.type, "answer": self.answer}


class Candidate(_Message):
    type: Literal["candidate"] = "candidate"
    candidate: Any = None
    room_id: Optional[str] = Field(default=None, alias="roomId")

    def relay(self) -> dict:
        return {"type": self.type, "candidate": self.candidate}


# What a client may send to the broker
InboundMessage = Annotated[Union[Join, Offer, Answer, Candidate], Field(discriminator="type")]

# What the broker may deliver to a client
DeliveredMessage = Annotated[Union[PeerJoined, Offer, Answer, Candidate], Field(discriminator="type")]

_inbound = TypeAdapter(InboundMessage)
_delivered = TypeAdapter(DeliveredMessage)

PEER_JOINED = PeerJoined().model_dump()


def decode_inbound(raw: Union[str, bytes]) -> Union[Join, Offer, Answer, Candidate]:
    """Decode one client frame. Raises pydantic.ValidationError on anything malformed."""
    return _inbound.validate_json(raw)


def decode_delivered(data: Union[str, bytes, dict]) -> Union[PeerJoined, Offer, Answer, Candidate]:
    if isinstance(data, dict):
        return _delivered.validate_python(data)
    return _delivered.validate_json(data)
