from __future__ import annotations

import math
import re

from rail_pager.domain.value_objects import Coordinates

# Krasovsky 1940 ellipsoid, as used by the reference GCJ-02 implementation.
PI = 3.1415926535897932384626
A = 6378245.0
EE = 0.00669342162296594323

_DM_PATTERN = re.compile(r"^(\d+)°(\d+(?:\.\d+)?)'$")


def dm_to_decimal(text: str) -> float:
    """Convert a degrees/decimal-minutes string to decimal degrees.

    "39°50.5802'" -> 39.843 (degrees + minutes / 60, rounded to 5 places).

    Returns 0.0 when the string does not match D°MM.mmmm'. Callers that must
    not publish a 0,0 point are expected to validate the result.
    """
    match = _DM_PATTERN.match(text.strip())
    if match is None:
        return 0.0
    degrees = int(match.group(1))
    minutes = float(match.group(2))
    return round(degrees + minutes / 60, 5)


def convert_gps(lat_text: str, lon_text: str) -> Coordinates:
    """Convert a pair of D°MM.mmmm' strings to a WGS-84 coordinate."""
    return Coordinates(lat=dm_to_decimal(lat_text), lon=dm_to_decimal(lon_text))


def out_of_china(lon: float, lat: float) -> bool:
    return not (73.66 < lon < 135.05 and 3.86 < lat < 53.55)


def _transform_lat(lon: float, lat: float) -> float:
    ret = (
        -100.0
        + 2.0 * lon
        + 3.0 * lat
        + 0.2 * lat * lat
        + 0.1 * lon * lat
        + 0.2 * math.sqrt(abs(lon))
    )
    ret += (20.0 * math.sin(6.0 * lon * PI) + 20.0 * math.sin(2.0 * lon * PI)) * 2.0 / 3.0
    ret += (20.0 * math.sin(lat * PI) + 40.0 * math.sin(lat / 3.0 * PI)) * 2.0 / 3.0
    ret += (160.0 * math.sin(lat / 12.0 * PI) + 320 * math.sin(lat * PI / 30.0)) * 2.0 / 3.0
    return ret


def _transform_lon(lon: float, lat: float) -> float:
    ret = (
        300.0
        + lon
        + 2.0 * lat
        + 0.1 * lon * lon
        + 0.1 * lon * lat
        + 0.1 * math.sqrt(abs(lon))
    )
    ret += (20.0 * math.sin(6.0 * lon * PI) + 20.0 * math.sin(2.0 * lon * PI)) * 2.0 / 3.0
    ret += (20.0 * math.sin(lon * PI) + 40.0 * math.sin(lon / 3.0 * PI)) * 2.0 / 3.0
    ret += (150.0 * math.sin(lon / 12.0 * PI) + 300.0 * math.sin(lon / 30.0 * PI)) * 2.0 / 3.0
    return ret


def wgs84_to_gcj02(coords: Coordinates) -> Coordinates:
    """Apply the GCJ-02 ("Mars") offset to a WGS-84 coordinate.

    Operation order follows the reference coordtransform implementation so the
    output lines up with China-facing map tiles. Points outside mainland China
    are returned unchanged.
    """
    lat, lon = coords.lat, coords.lon
    if out_of_china(lon, lat):
        return coords

    dlat = _transform_lat(lon - 105.0, lat - 35.0)
    dlon = _transform_lon(lon - 105.0, lat - 35.0)
    radlat = lat / 180.0 * PI
    magic = math.sin(radlat)
    magic = 1 - EE * magic * magic
    sqrtmagic = math.sqrt(magic)
    dlat = (dlat * 180.0) / ((A * (1 - EE)) / (magic * sqrtmagic) * PI)
    dlon = (dlon * 180.0) / (A / sqrtmagic * math.cos(radlat) * PI)
    return Coordinates(lat=lat + dlat, lon=lon + dlon)
