from __future__ import annotations

import copy
import itertools
import logging
import threading
from typing import Callable

from rail_pager.domain.entities import MovementReading, PositionReading, TrainState
from rail_pager.domain.value_objects import TrainStatus
from rail_pager.infrastructure.time_utils import epoch_millis

logger = logging.getLogger(__name__)

Reading = MovementReading | PositionReading
UpdateCallback = Callable[[TrainState], None]


def train_id_for(reading: Reading) -> str:
    """Derive the TrainState key a reading belongs to.

    Movement readings and linked position readings key on the train number;
    unlinked position readings get a synthetic id from capture time and fix.
    """
    if isinstance(reading, MovementReading):
        return f"train-{reading.train_number}"
    if reading.linked_train_number is not None:
        return f"train-{reading.linked_train_number}"
    return (
        f"train-{epoch_millis(reading.captured_at)}"
        f"-{reading.gcj02.lat:.6f}-{reading.gcj02.lon:.6f}"
    )


class TrainStateStore:
    """In-process latest-state table, one TrainState per train id.

    ``update`` is serialized by a lock; subscribers are notified synchronously
    (outside the lock) before ``update`` returns, in registration order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._trains: dict[str, TrainState] = {}
        self._subscribers: dict[int, UpdateCallback] = {}
        self._ids = itertools.count(1)

    def update(self, reading: Reading) -> TrainState:
        """Apply a reading onto its TrainState (creating it if absent) and notify subscribers."""
        train_id = train_id_for(reading)
        with self._lock:
            state = self._trains.get(train_id)
            if state is None:
                state = TrainState(id=train_id, updated_at=reading.captured_at)
                self._trains[train_id] = state
            self._apply(state, reading)
            snapshot = copy.copy(state)
        self._notify(snapshot)
        return snapshot

    @staticmethod
    def _apply(state: TrainState, reading: Reading) -> None:
        # Field groups are disjoint: a reading only ever writes its own group.
        state.updated_at = reading.captured_at
        if isinstance(reading, MovementReading):
            state.movement = reading
            state.train_number = reading.train_number
            if state.status is not TrainStatus.MAINTENANCE:
                state.status = TrainStatus.STOPPED if reading.speed_kmh == 0 else TrainStatus.ACTIVE
        else:
            state.position = reading
            if reading.linked_train_number is not None:
                state.train_number = reading.linked_train_number

    def set_status(self, train_id: str, status: TrainStatus) -> bool:
        with self._lock:
            state = self._trains.get(train_id)
            if state is None:
                return False
            state.status = status
            snapshot = copy.copy(state)
        self._notify(snapshot)
        return True

    def get_all(self) -> list[TrainState]:
        with self._lock:
            return [copy.copy(s) for s in self._trains.values()]

    def get_one(self, train_id: str) -> TrainState | None:
        with self._lock:
            state = self._trains.get(train_id)
            return copy.copy(state) if state is not None else None

    def remove(self, train_id: str) -> bool:
        with self._lock:
            return self._trains.pop(train_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._trains.clear()

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._trains)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: UpdateCallback) -> Callable[[], None]:
        """Register an update callback. Returns an idempotent unsubscribe function."""
        with self._lock:
            subscription_id = next(self._ids)
            self._subscribers[subscription_id] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(subscription_id, None)

        return unsubscribe

    def _notify(self, state: TrainState) -> None:
        # Callbacks run on a copy, outside the lock, so they may unsubscribe during dispatch.
        with self._lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(state)
            except Exception:
                logger.exception("Train update callback failed for %s", state.id)
