"""
LiveKit webhook payloads as a closed union keyed by the ``event`` field.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _LiveKitModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Room(_LiveKitModel):
    name: str
    sid: Optional[str] = None


class Participant(_LiveKitModel):
    identity: str
    sid: Optional[str] = None
    name: Optional[str] = None


class EgressInfo(_LiveKitModel):
    egress_id: str
    room_name: Optional[str] = None
    room_id: Optional[str] = None
    status: Optional[str] = None


class _Event(_LiveKitModel):
    id: Optional[str] = None
    created_at: Optional[int] = None


class RoomStarted(_Event):
    event: Literal["room_started"]
    room: Room


class RoomFinished(_Event):
    event: Literal["room_finished"]
    room: Room


class ParticipantJoined(_Event):
    event: Literal["participant_joined"]
    room: Optional[Room] = None
    participant: Participant


class ParticipantLeft(_Event):
    event: Literal["participant_left"]
    room: Optional[Room] = None
    participant: Participant


class EgressStarted(_Event):
    event: Literal["egress_started"]
    egress_info: EgressInfo


class EgressUpdated(_Event):
    event: Literal["egress_updated"]
    egress_info: EgressInfo


class EgressEnded(_Event):
    event: Literal["egress_ended"]
    egress_info: EgressInfo


LiveKitEvent = Annotated[
    Union[
        RoomStarted,
        RoomFinished,
        ParticipantJoined,
        ParticipantLeft,
        EgressStarted,
        EgressUpdated,
        EgressEnded,
    ],
    Field(discriminator="event"),
]

LIVEKIT_EVENT_TYPES = frozenset(
    {
        "room_started",
        "room_finished",
        "participant_joined",
        "participant_left",
        "egress_started",
        "egress_updated",
        "egress_ended",
    }
)

livekit_event_adapter = TypeAdapter(LiveKitEvent)


class WebhookAck(BaseModel):
    received: bool = True
    ignored: bool = False
