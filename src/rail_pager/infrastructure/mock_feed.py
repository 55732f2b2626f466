from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from datetime import datetime

from rail_pager.domain.value_objects import PagerAddress
from rail_pager.infrastructure.frame import build_frame
from rail_pager.infrastructure.time_utils import CHINA_TZ
from rail_pager.infrastructure.udp_bridge import UdpBridge

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0  # seconds

# Base coordinates around Beijing
BASE_LAT = 39.9042
BASE_LON = 116.4074

MOCK_TRAIN_NUMBERS = (69012, 23515, 8202)

# Filler in front of the coordinate block, copied from a real 1234002 telegram.
_POSITION_PREFIX = "20202310190532U7]1 9U3 [-[2020"


def _dm_digits(value: float, degree_width: int) -> str:
    """Encode decimal degrees as DDD MM mmmm digits (no separators)."""
    degrees = int(value)
    minutes = (value - degrees) * 60
    whole = int(minutes)
    fraction = int(round((minutes - whole) * 10000))
    if fraction == 10000:
        whole, fraction = whole + 1, 0
    return f"{degrees:0{degree_width}d}{whole:02d}{fraction:04d}"


def movement_body(train_number: int, speed_kmh: int, mileage_tenths: int) -> str:
    """Format a 1234000 telegram, e.g. (69012, 19, 33) -> "69012  19    33"."""
    return f"{train_number:>5} {speed_kmh:>3} {mileage_tenths:>5}"


def position_body(lat: float, lon: float) -> str:
    """Format a 50 character 1234002 telegram for a WGS-84 fix."""
    return _POSITION_PREFIX + _dm_digits(lon, 3) + _dm_digits(lat, 2) + "000"


class MockFeed:
    """Generates synthetic pager frames and pushes them through the bridge decode path.

    Used instead of the UDP listener when USE_MOCK_DATA is set, so the whole
    pipeline downstream of the socket runs against realistic telegrams.
    """

    def __init__(
        self,
        bridge: UdpBridge,
        interval: float = DEFAULT_INTERVAL,
        rng: random.Random | None = None,
    ) -> None:
        self._bridge = bridge
        self._interval = interval
        self._rng = rng or random.Random()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def generate(self, now: datetime | None = None) -> list[bytes]:
        """Return one movement frame and the matching position frame."""
        captured_at = now or datetime.now(tz=CHINA_TZ)
        train_number = self._rng.choice(MOCK_TRAIN_NUMBERS)
        speed = self._rng.randint(0, 160)
        mileage = self._rng.randint(10, 99999)
        lat = BASE_LAT + (self._rng.random() - 0.5) * 0.01
        lon = BASE_LON + (self._rng.random() - 0.5) * 0.01
        return [
            build_frame(PagerAddress.MOVEMENT.value, movement_body(train_number, speed, mileage), captured_at),
            build_frame(PagerAddress.POSITION.value, position_body(lat, lon), captured_at),
        ]

    def emit_once(self) -> None:
        for frame in self.generate():
            self._bridge.handle_frame(frame, ("mock", 0))

    async def start(self) -> None:
        if self.is_running:
            logger.info("[MockData] Mock data generation already running")
            return
        logger.info("[MockData] Starting mock data generation every %.1fs", self._interval)
        self._task = asyncio.create_task(self._loop())

    async def _loop(self) -> None:
        while True:
            self.emit_once()
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("[MockData] Stopped mock data generation")
