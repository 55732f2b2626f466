"""Tests for domain entities (dataclasses)."""
from __future__ import annotations

from datetime import datetime

from rail_pager.domain.entities import (
    MovementReading,
    PositionReading,
    SubscriberConnection,
    TrainState,
)
from rail_pager.domain.value_objects import PagerAddress, TrainStatus


def test_movement_reading_to_dict(movement_reading: MovementReading) -> None:
    data = movement_reading.to_dict()
    assert data["trainNumber"] == 69012
    assert data["speed"] == 19
    assert data["mileage"] == 3.3
    assert data["timestamp"] == "2025-04-09T23:42:20+08:00"


def test_position_reading_to_dict(position_reading: PositionReading) -> None:
    data = position_reading.to_dict()
    assert data["wgs84_latitude"] == 39.843
    assert data["gcj02_longitude"] == 116.23975257786913
    assert data["rawMessage"] == position_reading.raw_message


def test_train_state_defaults(captured_at: datetime) -> None:
    state = TrainState(id="train-1", updated_at=captured_at)
    assert state.status is TrainStatus.ACTIVE
    assert state.train_number is None
    assert state.position is None
    assert state.movement is None


def test_train_state_to_dict_unknown_train_number(captured_at: datetime) -> None:
    data = TrainState(id="train-1", updated_at=captured_at).to_dict()
    assert data["trainNumber"] == "Unknown"
    assert data["status"] == "active"
    assert data["movement"] is None
    assert data["pocsag1234002Data"] is None


def test_train_state_to_dict_full(
    captured_at: datetime,
    movement_reading: MovementReading,
    position_reading: PositionReading,
) -> None:
    state = TrainState(
        id="train-69012",
        updated_at=captured_at,
        train_number=69012,
        movement=movement_reading,
        position=position_reading,
    )
    data = state.to_dict()
    assert data["id"] == "train-69012"
    assert data["trainNumber"] == "69012"
    assert data["movement"]["speed"] == 19
    assert data["pocsag1234002Data"]["gcj02_latitude"] == 39.84421697498666


def test_subscriber_connection_empty_set_wants_all(captured_at: datetime) -> None:
    conn = SubscriberConnection(id="c1", connected_at=captured_at, last_liveness_at=captured_at)
    assert conn.wants("train-1") is True
    assert conn.wants("train-2") is True


def test_subscriber_connection_filters(captured_at: datetime) -> None:
    conn = SubscriberConnection(
        id="c1", connected_at=captured_at, last_liveness_at=captured_at, subscriptions={"T1"}
    )
    assert conn.wants("T1") is True
    assert conn.wants("T2") is False


def test_pager_address_values() -> None:
    assert PagerAddress.MOVEMENT == 1234000
    assert PagerAddress(1234002) is PagerAddress.POSITION
