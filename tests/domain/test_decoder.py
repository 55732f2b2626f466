"""Tests for the movement and position telegram decoders."""
from __future__ import annotations

from datetime import datetime

import pytest

from rail_pager.domain.decoder import decode_movement, decode_position
from rail_pager.domain.exceptions import (
    DecodeError,
    InvalidBodyError,
    MissingCoordinatesError,
)

POSITION_BODY = "20202310190532U7]1 9U3 [-[202011614023139505802000"
POSITION_BODY_SUZHOU = "20202350006330U].9UU.6 [-[202012037603931201079000"

# ---------------------------------------------------------------------------
# decode_movement
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("payload", "train_number", "speed", "mileage"),
    [
        ("69012  19    33", 69012, 19, 3.3),
        ("23515  41    27", 23515, 41, 2.7),
        ("  885  53    28", 885, 53, 2.8),
        (" 8202  39    73", 8202, 39, 7.3),
        ("  351 152   156", 351, 152, 15.6),
        ("   10  84   220", 10, 84, 22.0),
    ],
)
def test_decode_movement_valid(
    payload: str, train_number: int, speed: int, mileage: float, captured_at: datetime
) -> None:
    reading = decode_movement(payload, captured_at)
    assert reading.train_number == train_number
    assert reading.speed_kmh == speed
    assert reading.mileage_km == mileage
    assert reading.captured_at == captured_at


def test_decode_movement_mileage_is_tenths(captured_at: datetime) -> None:
    reading = decode_movement("24014   0 44433", captured_at)
    assert reading.mileage_km == 44433 / 10
    assert reading.speed_kmh == 0


@pytest.mark.parametrize(
    "payload",
    [
        "24014   0 -----",
        "----- --- -----",
        "-5-[- --- -----",
        "-----  19    28",
        "69012 ---    33",
    ],
)
def test_decode_movement_filler_rejected(payload: str, captured_at: datetime) -> None:
    with pytest.raises(InvalidBodyError):
        decode_movement(payload, captured_at)


@pytest.mark.parametrize(
    "payload",
    [
        "69012  19    3\n",  # newline inside the mileage field
        "６９０１２  19    33",  # full-width digits
        "69012  1\t    33",
    ],
)
def test_decode_movement_only_ascii_digits_and_spaces(payload: str, captured_at: datetime) -> None:
    with pytest.raises(InvalidBodyError):
        decode_movement(payload, captured_at)


def test_decode_movement_error_carries_raw_fields(captured_at: datetime) -> None:
    with pytest.raises(InvalidBodyError) as exc_info:
        decode_movement("24014   0 -----", captured_at)
    assert exc_info.value.fields == ("24014", "  0", "-----")


def test_decode_movement_truncated_rejected(captured_at: datetime) -> None:
    with pytest.raises(InvalidBodyError):
        decode_movement("69012  19", captured_at)


def test_decode_movement_error_is_decode_error(captured_at: datetime) -> None:
    with pytest.raises(DecodeError):
        decode_movement("", captured_at)


# ---------------------------------------------------------------------------
# decode_position
# ---------------------------------------------------------------------------


def test_decode_position_suzhou(captured_at: datetime) -> None:
    reading = decode_position(POSITION_BODY_SUZHOU, captured_at)
    assert reading.wgs84.lat == 31.33513
    assert reading.wgs84.lon == 120.62673
    assert reading.gcj02.lat == pytest.approx(31.332972872033253, abs=1e-9)
    assert reading.gcj02.lon == pytest.approx(120.63091655092123, abs=1e-9)
    assert reading.wgs84_text == "31°20.1079' 120°37.6039'"
    assert reading.raw_message == POSITION_BODY_SUZHOU
    assert reading.linked_train_number is None


def test_decode_position_beijing(captured_at: datetime) -> None:
    reading = decode_position(POSITION_BODY, captured_at)
    assert reading.wgs84.lat == 39.843
    assert reading.wgs84.lon == 116.23372


def test_decode_position_wrong_length(captured_at: datetime) -> None:
    with pytest.raises(MissingCoordinatesError, match="length"):
        decode_position("20202350006330U].9UU.6 [-[2020", captured_at)


def test_decode_position_not_a_number(captured_at: datetime) -> None:
    with pytest.raises(MissingCoordinatesError, match="not_a_number"):
        decode_position("20202310526732U7]1 9U3 [-[20205.632891339521253000", captured_at)


def test_decode_position_non_ascii_digits_rejected(captured_at: datetime) -> None:
    # Arabic-Indic "39" in the latitude degree slot
    payload = POSITION_BODY[:39] + "٣٩" + POSITION_BODY[41:]
    assert len(payload) == 50
    with pytest.raises(MissingCoordinatesError, match="not_a_number"):
        decode_position(payload, captured_at)


def test_decode_position_zero_axis_rejected(captured_at: datetime) -> None:
    # All-zero coordinate block would otherwise publish a point at 0,0.
    payload = POSITION_BODY[:30] + "0" * 17 + "000"
    with pytest.raises(MissingCoordinatesError, match="Implausible"):
        decode_position(payload, captured_at)


def test_decode_position_error_keeps_raw_message(captured_at: datetime) -> None:
    with pytest.raises(MissingCoordinatesError) as exc_info:
        decode_position("short", captured_at)
    assert exc_info.value.raw_message == "short"
