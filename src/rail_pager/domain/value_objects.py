from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PagerAddress(int, Enum):
    """POCSAG capcodes the relay acts upon. Every other address is ignored."""

    MOVEMENT = 1234000  # train number / speed / mileage
    POSITION = 1234002  # GPS telegram


class TrainStatus(str, Enum):
    """Operational status of a tracked train.

    Using (str, Enum) so values serialize straight into JSON envelopes.
    """

    ACTIVE = "active"
    STOPPED = "stopped"
    MAINTENANCE = "maintenance"


class MessageType(str, Enum):
    """Envelope type tags on the push channel (both directions)."""

    TRAIN_POSITION = "train_position"
    TRAIN_POSITIONS = "train_positions"
    PONG = "pong"
    ERROR = "error"
    PING = "ping"
    SUBSCRIBE_TRAIN = "subscribe_train"
    UNSUBSCRIBE_TRAIN = "unsubscribe_train"
    GET_ALL_TRAINS = "get_all_trains"


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float
