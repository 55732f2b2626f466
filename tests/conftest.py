"""Shared pytest fixtures for the rail pager relay test suite."""
from __future__ import annotations

from datetime import datetime

import pytest

from rail_pager.domain.entities import MovementReading, PositionReading
from rail_pager.domain.value_objects import Coordinates
from rail_pager.infrastructure.store import TrainStateStore
from rail_pager.infrastructure.time_utils import CHINA_TZ


@pytest.fixture
def captured_at() -> datetime:
    return datetime(2025, 4, 9, 23, 42, 20, tzinfo=CHINA_TZ)


@pytest.fixture
def movement_reading(captured_at: datetime) -> MovementReading:
    return MovementReading(
        captured_at=captured_at,
        train_number=69012,
        speed_kmh=19,
        mileage_km=3.3,
    )


@pytest.fixture
def position_reading(captured_at: datetime) -> PositionReading:
    return PositionReading(
        captured_at=captured_at,
        raw_message="20202310190532U7]1 9U3 [-[202011614023139505802000",
        wgs84=Coordinates(lat=39.843, lon=116.23372),
        gcj02=Coordinates(lat=39.84421697498666, lon=116.23975257786913),
        wgs84_text="39°50.5802' 116°14.0231'",
    )


@pytest.fixture
def store() -> TrainStateStore:
    return TrainStateStore()
