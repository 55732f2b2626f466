from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Protocol

from rail_pager.domain.decoder import decode_movement, decode_position
from rail_pager.domain.entities import MovementReading, PositionReading
from rail_pager.domain.exceptions import DecodeError, InvalidBodyError, SocketBindError
from rail_pager.domain.value_objects import PagerAddress
from rail_pager.infrastructure.frame import decode_address, parse_frame
from rail_pager.infrastructure.time_utils import CHINA_TZ

logger = logging.getLogger(__name__)

DEFAULT_UDP_HOST = "0.0.0.0"
DEFAULT_UDP_PORT = 9999


class ReadingHandler(Protocol):
    """Receiver of decoded readings (implemented by IngestService)."""

    def on_movement(self, reading: MovementReading) -> None: ...

    def on_position(self, reading: PositionReading) -> None: ...


@dataclass
class BridgeStats:
    received: int = 0
    ignored: int = 0  # addresses other than 1234000 / 1234002
    decoded: int = 0
    dropped: int = 0


class _BridgeProtocol(asyncio.DatagramProtocol):
    def __init__(self, bridge: UdpBridge) -> None:
        self._bridge = bridge

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._bridge.handle_frame(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("[UDP Bridge] Socket error: %s", exc)


class UdpBridge:
    """UDP listener that turns relayed pager frames into readings.

    Every datagram is handled on its own: a frame that fails at any stage is
    logged and dropped without affecting the listener or later frames.
    """

    def __init__(
        self,
        handler: ReadingHandler,
        host: str = DEFAULT_UDP_HOST,
        port: int = DEFAULT_UDP_PORT,
        tz: tzinfo = CHINA_TZ,
    ) -> None:
        self._handler = handler
        self._host = host
        self._port = port
        self._tz = tz
        self._transport: asyncio.DatagramTransport | None = None
        self.stats = BridgeStats()

    @property
    def is_running(self) -> bool:
        return self._transport is not None

    @property
    def bound_port(self) -> int | None:
        """Actual port in use (differs from the configured one when 0 was requested)."""
        if self._transport is None:
            return None
        sockname = self._transport.get_extra_info("sockname")
        return int(sockname[1]) if sockname else None

    async def start(self) -> None:
        """Bind the UDP endpoint. Raises SocketBindError when the port cannot be acquired."""
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _BridgeProtocol(self),
                local_addr=(self._host, self._port),
            )
        except OSError as exc:
            raise SocketBindError(self._host, self._port, str(exc)) from exc
        self._transport = transport
        logger.info("[UDP Bridge] Listening on %s:%s", self._host, self.bound_port)

    def stop(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("[UDP Bridge] UDP server stopped")

    def handle_frame(self, data: bytes, addr: Any = None) -> None:
        """Filter, decode and dispatch one datagram. Never raises."""
        self.stats.received += 1

        try:
            address = decode_address(data)
        except DecodeError as exc:
            self.stats.dropped += 1
            logger.warning("[UDP Bridge] Dropping frame from %s: %s raw=%r", addr, exc, data[:80])
            return

        if address not in (PagerAddress.MOVEMENT, PagerAddress.POSITION):
            self.stats.ignored += 1
            return

        logger.debug("[UDP Bridge] POCSAG %s frame from %s", address, addr)
        try:
            frame = parse_frame(data, self._tz)
            if address == PagerAddress.MOVEMENT:
                movement = decode_movement(frame.body, frame.captured_at)
            else:
                position = decode_position(frame.body, frame.captured_at)
        except InvalidBodyError as exc:
            self.stats.dropped += 1
            logger.warning(
                "[UDP Bridge] Failed to parse POCSAG %s: trainNumber=%r speed=%r mileage=%r",
                address,
                *exc.fields,
            )
            return
        except DecodeError as exc:
            self.stats.dropped += 1
            logger.warning("[UDP Bridge] Failed to parse POCSAG %s: %s", address, exc)
            return

        self.stats.decoded += 1
        try:
            if address == PagerAddress.MOVEMENT:
                self._handler.on_movement(movement)
            else:
                self._handler.on_position(position)
        except Exception:
            logger.exception("[UDP Bridge] Error processing POCSAG %s reading", address)
