from __future__ import annotations

import dataclasses
import logging

from rail_pager.domain.entities import MovementReading, PositionReading
from rail_pager.infrastructure.store import TrainStateStore
from rail_pager.infrastructure.time_utils import same_or_next_second

logger = logging.getLogger(__name__)


class IngestService:
    """Routes decoded readings from the bridge into the TrainStateStore.

    When correlation is enabled, a position telegram captured in the same
    second as the last movement telegram (or the second after) is linked to
    that train. The link is best-effort: no match simply leaves the position
    unlinked under a synthetic id.
    """

    def __init__(self, store: TrainStateStore, correlate: bool = True) -> None:
        self._store = store
        self._correlate = correlate
        self._last_movement: MovementReading | None = None
        self.movement_count = 0
        self.position_count = 0

    def on_movement(self, reading: MovementReading) -> None:
        logger.info(
            "[Ingest] POCSAG 1234000: train=%s speed=%s mileage=%s at %s",
            reading.train_number,
            reading.speed_kmh,
            reading.mileage_km,
            reading.captured_at.isoformat(),
        )
        self.movement_count += 1
        self._last_movement = reading
        self._store.update(reading)

    def on_position(self, reading: PositionReading) -> None:
        linked = self.link(reading)
        logger.info(
            "[Ingest] POCSAG 1234002: lat=%s lon=%s train=%s at %s",
            linked.gcj02.lat,
            linked.gcj02.lon,
            linked.linked_train_number,
            linked.captured_at.isoformat(),
        )
        self.position_count += 1
        self._store.update(linked)

    def link(self, reading: PositionReading) -> PositionReading:
        """Return the reading, linked to the last movement telegram when their timestamps match."""
        movement = self._last_movement
        if not self._correlate or movement is None or reading.linked_train_number is not None:
            return reading
        if not same_or_next_second(movement.captured_at, reading.captured_at):
            return reading
        return dataclasses.replace(reading, linked_train_number=movement.train_number)
