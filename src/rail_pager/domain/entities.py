from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rail_pager.domain.value_objects import Coordinates, TrainStatus

UNKNOWN_TRAIN_NUMBER = "Unknown"


@dataclass(frozen=True)
class MovementReading:
    """Decoded 1234000 telegram: train number, speed and mileage."""

    captured_at: datetime
    train_number: int
    speed_kmh: int
    mileage_km: float  # one fractional digit, the wire value is tenths of a km

    def to_dict(self) -> dict[str, Any]:
        return {
            "trainNumber": self.train_number,
            "speed": self.speed_kmh,
            "mileage": self.mileage_km,
            "timestamp": self.captured_at.isoformat(),
        }


@dataclass(frozen=True)
class PositionReading:
    """Decoded 1234002 telegram carrying a GPS fix."""

    captured_at: datetime
    raw_message: str
    wgs84: Coordinates
    gcj02: Coordinates
    wgs84_text: str = ""  # e.g. "31°20.1079' 120°37.6039'"
    linked_train_number: int | None = None  # advisory, set by the correlator

    def to_dict(self) -> dict[str, Any]:
        return {
            "pocsagMsgTimestamp": self.captured_at.isoformat(),
            "wgs84_latitude": self.wgs84.lat,
            "wgs84_longitude": self.wgs84.lon,
            "gcj02_latitude": self.gcj02.lat,
            "gcj02_longitude": self.gcj02.lon,
            "rawMessage": self.raw_message,
        }


@dataclass
class TrainState:
    """Latest known state of one train, owned by the TrainStateStore."""

    id: str
    updated_at: datetime
    train_number: int | None = None
    status: TrainStatus = TrainStatus.ACTIVE
    position: PositionReading | None = None
    movement: MovementReading | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by train_position / train_positions envelopes."""
        return {
            "id": self.id,
            "trainNumber": (
                str(self.train_number) if self.train_number is not None else UNKNOWN_TRAIN_NUMBER
            ),
            "timestamp": self.updated_at.isoformat(),
            "status": self.status.value,
            "movement": self.movement.to_dict() if self.movement else None,
            "pocsag1234002Data": self.position.to_dict() if self.position else None,
        }


@dataclass
class SubscriberConnection:
    """Bookkeeping for one push-channel subscriber."""

    id: str
    connected_at: datetime
    last_liveness_at: datetime
    subscriptions: set[str] = field(default_factory=set)  # empty set == all trains

    def wants(self, train_id: str) -> bool:
        return not self.subscriptions or train_id in self.subscriptions
