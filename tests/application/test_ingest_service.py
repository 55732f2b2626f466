"""Tests for IngestService."""
from __future__ import annotations

import dataclasses
from datetime import timedelta

from rail_pager.application.ingest_service import IngestService
from rail_pager.domain.entities import MovementReading, PositionReading, TrainState
from rail_pager.infrastructure.store import TrainStateStore


def test_movement_updates_store(store: TrainStateStore, movement_reading: MovementReading) -> None:
    service = IngestService(store)
    service.on_movement(movement_reading)

    assert store.get_one("train-69012") is not None
    assert service.movement_count == 1


def test_position_in_same_second_is_linked(
    store: TrainStateStore,
    movement_reading: MovementReading,
    position_reading: PositionReading,
) -> None:
    service = IngestService(store)
    service.on_movement(movement_reading)
    service.on_position(position_reading)

    assert store.count == 1
    state = store.get_one("train-69012")
    assert state is not None
    assert state.movement == movement_reading
    assert state.position is not None
    assert state.position.linked_train_number == 69012


def test_position_in_next_second_is_linked(
    movement_reading: MovementReading, position_reading: PositionReading
) -> None:
    service = IngestService(TrainStateStore())
    service.on_movement(movement_reading)
    later = dataclasses.replace(
        position_reading, captured_at=position_reading.captured_at + timedelta(seconds=1)
    )
    assert service.link(later).linked_train_number == 69012


def test_stale_position_stays_unlinked(
    store: TrainStateStore,
    movement_reading: MovementReading,
    position_reading: PositionReading,
) -> None:
    service = IngestService(store)
    service.on_movement(movement_reading)
    stale = dataclasses.replace(
        position_reading, captured_at=position_reading.captured_at + timedelta(seconds=5)
    )
    service.on_position(stale)

    assert store.count == 2
    assert service.position_count == 1


def test_position_without_movement_stays_unlinked(
    position_reading: PositionReading,
) -> None:
    service = IngestService(TrainStateStore())
    assert service.link(position_reading).linked_train_number is None


def test_correlation_disabled(
    store: TrainStateStore,
    movement_reading: MovementReading,
    position_reading: PositionReading,
) -> None:
    service = IngestService(store, correlate=False)
    service.on_movement(movement_reading)
    service.on_position(position_reading)
    assert store.count == 2


def test_one_notification_per_reading(
    store: TrainStateStore,
    movement_reading: MovementReading,
    position_reading: PositionReading,
) -> None:
    received: list[TrainState] = []
    store.subscribe(received.append)
    service = IngestService(store)

    service.on_movement(movement_reading)
    service.on_position(position_reading)

    assert [s.id for s in received] == ["train-69012", "train-69012"]
