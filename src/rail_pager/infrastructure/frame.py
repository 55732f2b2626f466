"""Codec for the UDP frames relayed by the SDR POCSAG decoder.

Layout::

    +-----------------------+---------------------------------------------+
    | timestamp (7 bytes)   | NUL-delimited ASCII segments                |
    | >H B B B B B          | proto \\0 address \\0 function \\0 format     |
    | Y  M D h m s          |       \\0 receiver \\0 body [\\0 ...]          |
    +-----------------------+---------------------------------------------+

The timestamp header is receiver-local wall time; segment 5 is the telegram.
"""
from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from datetime import datetime, tzinfo

from rail_pager.domain.exceptions import FrameError
from rail_pager.infrastructure.time_utils import CHINA_TZ

TIMESTAMP_STRUCT = struct.Struct(">HBBBBB")
SEGMENT_DELIMITER = b"\x00"

ADDRESS_SEGMENT = 1
FUNCTION_SEGMENT = 2
FORMAT_SEGMENT = 3
BODY_SEGMENT = 5

DEFAULT_PROTOCOL = "POCSAG1200"

_ASCII_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class PagerFrame:
    """A parsed UDP frame: routing key, capture time and telegram text."""

    address: int
    captured_at: datetime
    function_bits: int
    message_format: str
    body: str


def split_segments(frame: bytes) -> list[bytes]:
    """Split the segment area (everything after the timestamp header) on NUL."""
    if len(frame) < TIMESTAMP_STRUCT.size:
        raise FrameError(f"Frame too short for timestamp header: {len(frame)} bytes")
    return frame[TIMESTAMP_STRUCT.size :].split(SEGMENT_DELIMITER)


def _segment(frame: bytes, index: int) -> bytes:
    segments = split_segments(frame)
    if len(segments) <= index:
        raise FrameError(f"Frame has {len(segments)} segments, segment {index} missing")
    return segments[index]


def _decode_text(raw: bytes) -> str:
    # Numeric telegrams are plain ASCII; latin-1 keeps every byte decodable.
    return raw.decode("latin-1")


def decode_address(frame: bytes) -> int:
    raw = _decode_text(_segment(frame, ADDRESS_SEGMENT)).strip()
    if _ASCII_DIGITS.fullmatch(raw) is None:
        raise FrameError(f"Invalid address segment: {raw!r}")
    return int(raw)


def decode_body(frame: bytes) -> str:
    return _decode_text(_segment(frame, BODY_SEGMENT))


def decode_timestamp(frame: bytes, tz: tzinfo = CHINA_TZ) -> datetime:
    """Read the fixed binary timestamp header as an aware datetime in ``tz``."""
    if len(frame) < TIMESTAMP_STRUCT.size:
        raise FrameError(f"Frame too short for timestamp header: {len(frame)} bytes")
    year, month, day, hour, minute, second = TIMESTAMP_STRUCT.unpack_from(frame, 0)
    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError as exc:
        raise FrameError(f"Invalid frame timestamp: {exc}") from exc


def parse_frame(frame: bytes, tz: tzinfo = CHINA_TZ) -> PagerFrame:
    """Parse every field the relay needs from one datagram."""
    segments = split_segments(frame)
    if len(segments) <= BODY_SEGMENT:
        raise FrameError(f"Frame has {len(segments)} segments, expected at least {BODY_SEGMENT + 1}")
    function_raw = _decode_text(segments[FUNCTION_SEGMENT]).strip()
    if _ASCII_DIGITS.fullmatch(function_raw) is None:
        raise FrameError(f"Invalid function segment: {function_raw!r}")
    return PagerFrame(
        address=decode_address(frame),
        captured_at=decode_timestamp(frame, tz),
        function_bits=int(function_raw),
        message_format=_decode_text(segments[FORMAT_SEGMENT]).strip(),
        body=_decode_text(segments[BODY_SEGMENT]),
    )


def build_frame(
    address: int,
    body: str,
    captured_at: datetime,
    function_bits: int = 3,
    message_format: str = "Numeric",
    receiver: str = "0",
    protocol: str = DEFAULT_PROTOCOL,
) -> bytes:
    """Encode a frame in the relay layout. Used by the mock feed and tests."""
    header = TIMESTAMP_STRUCT.pack(
        captured_at.year,
        captured_at.month,
        captured_at.day,
        captured_at.hour,
        captured_at.minute,
        captured_at.second,
    )
    segments = [protocol, str(address), str(function_bits), message_format, receiver, body]
    return header + SEGMENT_DELIMITER.join(s.encode("latin-1") for s in segments)
