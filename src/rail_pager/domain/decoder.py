"""Decoders for the two railway pager telegrams the relay understands.

1234000 (movement), fixed width ``{5} {3} {5}``::

    ----- --- -----
    69012  19    33     -> train 69012, 19 km/h, 3.3 km

1234002 (position), 50 characters, coordinates near the end::

    20202350006330U].9UU.6 [-[202012037603931201079000
                                  |||||||||||||||||
                                  120 37 6039 31 20 1079
                                  -> 31°20.1079' 120°37.6039'
"""
from __future__ import annotations

import re
from datetime import datetime

from rail_pager.domain.coordinates import convert_gps, wgs84_to_gcj02
from rail_pager.domain.entities import MovementReading, PositionReading
from rail_pager.domain.exceptions import InvalidBodyError, MissingCoordinatesError

POSITION_TELEGRAM_LENGTH = 50

_PADDED_NUMBER = re.compile(r" *[0-9]+")
_DIGITS = re.compile(r"[0-9]+")


def _is_padded_number(field: str, width: int) -> bool:
    return len(field) == width and _PADDED_NUMBER.fullmatch(field) is not None


def decode_movement(payload: str, captured_at: datetime) -> MovementReading:
    """Parse a 1234000 telegram into a MovementReading.

    Raises InvalidBodyError when any of the three fields is truncated or holds
    filler such as "-----"; no partial reading is ever returned.
    """
    train_number_str = payload[0:5]
    speed_str = payload[6:9]
    mileage_str = payload[10:15]
    fields = (train_number_str, speed_str, mileage_str)

    if not (
        _is_padded_number(train_number_str, 5)
        and _is_padded_number(speed_str, 3)
        and _is_padded_number(mileage_str, 5)
    ):
        raise InvalidBodyError(fields)

    return MovementReading(
        captured_at=captured_at,
        train_number=int(train_number_str),
        speed_kmh=int(speed_str),
        mileage_km=int(mileage_str) / 10,
    )


def decode_position(payload: str, captured_at: datetime) -> PositionReading:
    """Parse a 1234002 telegram into a PositionReading with WGS-84 and GCJ-02 fixes.

    Raises MissingCoordinatesError when the telegram has the wrong length, a
    coordinate substring is not numeric (e.g. "5.6" in the degree slot), or an
    axis lands outside a plausible range.
    """
    if len(payload) != POSITION_TELEGRAM_LENGTH:
        raise MissingCoordinatesError(
            payload, f"Invalid POCSAG message body length {len(payload)}: {payload!r}"
        )

    lon_deg = payload[30:33]
    lon_min = payload[33:35]
    lon_min_dec = payload[35:39]
    lat_deg = payload[39:41]
    lat_min = payload[41:43]
    lat_min_dec = payload[43:47]

    parts = (lon_deg, lon_min, lon_min_dec, lat_deg, lat_min, lat_min_dec)
    if not all(_DIGITS.fullmatch(p) for p in parts):
        raise MissingCoordinatesError(
            payload, f"Invalid POCSAG message body because of not_a_number: {payload!r}"
        )

    lat_text = f"{lat_deg}°{lat_min}.{lat_min_dec}'"
    lon_text = f"{lon_deg}°{lon_min}.{lon_min_dec}'"
    wgs84 = convert_gps(lat_text, lon_text)

    if not (0 < wgs84.lat <= 90 and 0 < wgs84.lon <= 180):
        raise MissingCoordinatesError(
            payload, f"Implausible coordinates {wgs84.lat},{wgs84.lon} in {payload!r}"
        )

    return PositionReading(
        captured_at=captured_at,
        raw_message=payload,
        wgs84=wgs84,
        gcj02=wgs84_to_gcj02(wgs84),
        wgs84_text=f"{lat_text} {lon_text}",
    )
