from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Any, Dict, Literal, Optional, Union


CALL_SIGNAL_TYPES = (
    "call-offer",
    "call-accept",
    "call-reject",
    "start-group-call",
    "user-left-call",
)


# Client -> Server

class JoinPayload(BaseModel):
    room_id: str = Field(..., alias="roomId")

class JoinMessage(BaseModel):
    type: Literal["join"]
    payload: JoinPayload

class ChatPayload(BaseModel):
    message: str
    # Informational only, routing uses the sender's registered room
    room_id: Optional[str] = Field(None, alias="roomId")

class ChatMessage(BaseModel):
    type: Literal["chat"]
    payload: ChatPayload

class AudioPayload(BaseModel):
    audio: str
    sender_id: Optional[str] = Field(None, alias="senderId")
    room_id: Optional[str] = Field(None, alias="roomId")

class AudioMessage(BaseModel):
    type: Literal["audio-message"]
    payload: AudioPayload

class VoiceOfferMessage(BaseModel):
    type: Literal["voice-offer"]
    offer: Dict[str, Any]

class VoiceAnswerMessage(BaseModel):
    type: Literal["voice-answer"]
    answer: Dict[str, Any]
    to: str = Field(..., validation_alias=AliasChoices("to", "targetId"))

class VoiceCandidateMessage(BaseModel):
    type: Literal["voice-candidate"]
    candidate: Dict[str, Any]
    to: str = Field(..., validation_alias=AliasChoices("to", "targetId"))

class CallSignalMessage(BaseModel):
    """Call control notice, forwarded to the room with unknown fields kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["call-offer", "call-accept", "call-reject", "start-group-call", "user-left-call"]
    from_: Optional[str] = Field(None, alias="from")
    room_id: Optional[str] = Field(None, alias="roomId")


InboundEnvelope = Annotated[
    Union[
        JoinMessage,
        ChatMessage,
        AudioMessage,
        VoiceOfferMessage,
        VoiceAnswerMessage,
        VoiceCandidateMessage,
        CallSignalMessage,
    ],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundEnvelope)


def parse_envelope(raw: str) -> InboundEnvelope:
    """Validate one text frame. Raises pydantic.ValidationError on bad JSON, unknown type or missing fields."""
    return inbound_adapter.validate_json(raw)


# Server -> Client

class OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)

class IdPayload(BaseModel):
    sender_id: str = Field(..., serialization_alias="senderId")

class IdMessage(OutboundMessage):
    type: Literal["id"] = "id"
    payload: IdPayload

class UserCountPayload(BaseModel):
    count: int

class UserCountMessage(OutboundMessage):
    type: Literal["userCount"] = "userCount"
    payload: UserCountPayload

class ChatBroadcastPayload(BaseModel):
    sender_id: str = Field(..., serialization_alias="senderId")
    message: str

class ChatBroadcast(OutboundMessage):
    type: Literal["chat"] = "chat"
    payload: ChatBroadcastPayload

class AudioBroadcastPayload(BaseModel):
    sender_id: str = Field(..., serialization_alias="senderId")
    audio: str

class AudioBroadcast(OutboundMessage):
    type: Literal["audio-message"] = "audio-message"
    payload: AudioBroadcastPayload

class VoiceOfferRelay(OutboundMessage):
    type: Literal["voice-offer"] = "voice-offer"
    offer: Dict[str, Any]
    from_: str = Field(..., alias="from")

class VoiceAnswerRelay(OutboundMessage):
    type: Literal["voice-answer"] = "voice-answer"
    answer: Dict[str, Any]
    from_: str = Field(..., alias="from")

class VoiceCandidateRelay(OutboundMessage):
    type: Literal["voice-candidate"] = "voice-candidate"
    candidate: Dict[str, Any]
    from_: str = Field(..., alias="from")
