"""Tests for the UDP ingestion bridge."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from rail_pager.domain.entities import MovementReading, PositionReading
from rail_pager.domain.exceptions import SocketBindError
from rail_pager.infrastructure.frame import build_frame
from rail_pager.infrastructure.udp_bridge import UdpBridge

POSITION_BODY = "20202310190532U7]1 9U3 [-[202011614023139505802000"


class RecordingHandler:
    def __init__(self) -> None:
        self.movements: list[MovementReading] = []
        self.positions: list[PositionReading] = []
        self.received = asyncio.Event()

    def on_movement(self, reading: MovementReading) -> None:
        self.movements.append(reading)
        self.received.set()

    def on_position(self, reading: PositionReading) -> None:
        self.positions.append(reading)
        self.received.set()


def make_bridge() -> tuple[UdpBridge, RecordingHandler]:
    handler = RecordingHandler()
    return UdpBridge(handler, host="127.0.0.1", port=0), handler


# ---------------------------------------------------------------------------
# handle_frame
# ---------------------------------------------------------------------------


def test_movement_frame_decoded(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(build_frame(1234000, "69012  19    33", captured_at))

    assert len(handler.movements) == 1
    reading = handler.movements[0]
    assert (reading.train_number, reading.speed_kmh, reading.mileage_km) == (69012, 19, 3.3)
    assert reading.captured_at == captured_at
    assert bridge.stats.decoded == 1


def test_position_frame_decoded(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(build_frame(1234002, POSITION_BODY, captured_at))

    assert len(handler.positions) == 1
    assert handler.positions[0].wgs84.lat == 39.843


def test_other_address_ignored(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(build_frame(2048069, "#XPRLl,b", captured_at, message_format="Alpha"))

    assert handler.movements == [] and handler.positions == []
    assert bridge.stats.ignored == 1
    assert bridge.stats.dropped == 0


def test_invalid_body_dropped_and_logged(
    captured_at: datetime, caplog: pytest.LogCaptureFixture
) -> None:
    bridge, handler = make_bridge()
    with caplog.at_level(logging.WARNING, logger="rail_pager.infrastructure.udp_bridge"):
        bridge.handle_frame(build_frame(1234000, "24014   0 -----", captured_at))

    assert handler.movements == []
    assert bridge.stats.dropped == 1
    assert "-----" in caplog.text


def test_missing_coordinates_dropped(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(build_frame(1234002, "20202350006330U].9UU.6 [-[2020", captured_at))
    assert handler.positions == []
    assert bridge.stats.dropped == 1


def test_garbage_frame_dropped() -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(b"\x01")
    bridge.handle_frame(b"\x07\xe9\x04\x09\x17\x2a\x14garbage")
    assert bridge.stats.dropped == 2
    assert bridge.stats.received == 2


def test_non_ascii_digit_segments_dropped(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    valid = build_frame(1234000, "69012  19    33", captured_at)

    bridge.handle_frame(valid.replace(b"1234000", b"\xb2"))
    bridge.handle_frame(valid.replace(b"\x003\x00", b"\x00\xb9\x00"))

    assert handler.movements == []
    assert bridge.stats.received == 2
    assert bridge.stats.dropped == 2


def test_handler_exception_isolated(captured_at: datetime) -> None:
    handler = MagicMock()
    handler.on_movement.side_effect = RuntimeError("store exploded")
    bridge = UdpBridge(handler, port=0)

    bridge.handle_frame(build_frame(1234000, "69012  19    33", captured_at))
    bridge.handle_frame(build_frame(1234000, "23515  41    27", captured_at))

    assert handler.on_movement.call_count == 2


def test_failure_does_not_affect_next_frame(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    bridge.handle_frame(build_frame(1234000, "----- --- -----", captured_at))
    bridge.handle_frame(build_frame(1234000, "69012  19    33", captured_at))
    assert len(handler.movements) == 1


# ---------------------------------------------------------------------------
# Socket lifecycle
# ---------------------------------------------------------------------------


async def test_receives_datagram_over_udp(captured_at: datetime) -> None:
    bridge, handler = make_bridge()
    await bridge.start()
    try:
        port = bridge.bound_port
        assert port
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            asyncio.DatagramProtocol, remote_addr=("127.0.0.1", port)
        )
        transport.sendto(build_frame(1234000, "69012  19    33", captured_at))
        await asyncio.wait_for(handler.received.wait(), timeout=2.0)
        transport.close()
    finally:
        bridge.stop()

    assert handler.movements[0].train_number == 69012
    assert bridge.is_running is False


async def test_bind_failure_raises_socket_bind_error() -> None:
    first, _ = make_bridge()
    await first.start()
    try:
        second = UdpBridge(RecordingHandler(), host="127.0.0.1", port=first.bound_port or 0)
        with pytest.raises(SocketBindError) as exc_info:
            await second.start()
        assert exc_info.value.port == first.bound_port
    finally:
        first.stop()


def test_stop_without_start_is_noop() -> None:
    bridge, _ = make_bridge()
    bridge.stop()
    assert bridge.bound_port is None
