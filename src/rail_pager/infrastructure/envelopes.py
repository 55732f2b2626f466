"""Push-channel envelopes: ``{type, data?, timestamp}`` in both directions."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Union

from rail_pager.domain.entities import TrainState
from rail_pager.domain.exceptions import ProtocolError
from rail_pager.domain.value_objects import MessageType
from rail_pager.infrastructure.time_utils import iso_timestamp

# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrainPositionMessage:
    type: ClassVar[MessageType] = MessageType.TRAIN_POSITION
    train: TrainState

    def payload(self) -> Any:
        return self.train.to_dict()


@dataclass(frozen=True)
class TrainPositionsMessage:
    type: ClassVar[MessageType] = MessageType.TRAIN_POSITIONS
    trains: list[TrainState]

    def payload(self) -> Any:
        return [t.to_dict() for t in self.trains]


@dataclass(frozen=True)
class PongMessage:
    type: ClassVar[MessageType] = MessageType.PONG
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Any:
        return self.data


@dataclass(frozen=True)
class ErrorMessage:
    type: ClassVar[MessageType] = MessageType.ERROR
    error: str

    def payload(self) -> Any:
        return {"error": self.error}


OutboundMessage = Union[TrainPositionMessage, TrainPositionsMessage, PongMessage, ErrorMessage]


def encode_outbound(message: OutboundMessage, sent_at: datetime | None = None) -> str:
    return json.dumps(
        {
            "type": message.type.value,
            "data": message.payload(),
            "timestamp": iso_timestamp(sent_at),
        },
        ensure_ascii=False,
    )


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PingRequest:
    type: ClassVar[MessageType] = MessageType.PING


@dataclass(frozen=True)
class SubscribeTrainRequest:
    type: ClassVar[MessageType] = MessageType.SUBSCRIBE_TRAIN
    train_id: str


@dataclass(frozen=True)
class UnsubscribeTrainRequest:
    type: ClassVar[MessageType] = MessageType.UNSUBSCRIBE_TRAIN
    train_id: str


@dataclass(frozen=True)
class GetAllTrainsRequest:
    type: ClassVar[MessageType] = MessageType.GET_ALL_TRAINS


@dataclass(frozen=True)
class UnknownRequest:
    """A well-formed envelope whose type the server does not handle."""

    raw_type: str


InboundMessage = Union[
    PingRequest, SubscribeTrainRequest, UnsubscribeTrainRequest, GetAllTrainsRequest, UnknownRequest
]


def _train_id(envelope: dict[str, Any]) -> str:
    # The browser client sends trainId at top level; the envelope form nests it in data.
    data = envelope.get("data")
    train_id = envelope.get("trainId")
    if train_id is None and isinstance(data, dict):
        train_id = data.get("trainId")
    if not isinstance(train_id, str) or not train_id:
        raise ProtocolError(f"{envelope.get('type')} requires a non-empty trainId")
    return train_id


def decode_inbound(text: str) -> InboundMessage:
    """Parse one client message. Raises ProtocolError for malformed input."""
    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("Invalid message format") from exc
    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        raise ProtocolError("Invalid message format")

    msg_type = envelope["type"]
    if msg_type == MessageType.PING.value:
        return PingRequest()
    if msg_type == MessageType.SUBSCRIBE_TRAIN.value:
        return SubscribeTrainRequest(train_id=_train_id(envelope))
    if msg_type == MessageType.UNSUBSCRIBE_TRAIN.value:
        return UnsubscribeTrainRequest(train_id=_train_id(envelope))
    if msg_type == MessageType.GET_ALL_TRAINS.value:
        return GetAllTrainsRequest()
    return UnknownRequest(raw_type=msg_type)


def encode_inbound(request: InboundMessage, sent_at: datetime | None = None) -> str:
    """Serialize a client request (used by the subscriber client)."""
    if isinstance(request, UnknownRequest):
        raise ValueError(f"Cannot encode unknown request type {request.raw_type!r}")
    envelope: dict[str, Any] = {"type": request.type.value, "timestamp": iso_timestamp(sent_at)}
    if isinstance(request, (SubscribeTrainRequest, UnsubscribeTrainRequest)):
        envelope["data"] = {"trainId": request.train_id}
        envelope["trainId"] = request.train_id
    return json.dumps(envelope, ensure_ascii=False)


def decode_outbound(text: str) -> tuple[str, Any]:
    """Parse a server envelope into (type, data). Raises ProtocolError when malformed."""
    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("Invalid server message") from exc
    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        raise ProtocolError("Invalid server message")
    return envelope["type"], envelope.get("data")
