from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

CHINA_TZ: ZoneInfo = ZoneInfo("Asia/Shanghai")
UTC_TZ: ZoneInfo = ZoneInfo("UTC")


def now_utc() -> datetime:
    """Return the current moment as a timezone-aware datetime in UTC."""
    return datetime.now(tz=UTC_TZ)


def iso_timestamp(dt: datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and a Z suffix.

    Matches the envelope format of the push channel, e.g. "2025-04-09T15:42:20.000Z".
    """
    moment = (dt or now_utc()).astimezone(UTC_TZ)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def epoch_millis(dt: datetime) -> int:
    """Return milliseconds since the Unix epoch for a timezone-aware datetime."""
    return int(dt.timestamp() * 1000)


def same_or_next_second(earlier: datetime, later: datetime) -> bool:
    """Return True when later falls in the same wall-clock second as earlier or the one after."""
    base = earlier.replace(microsecond=0)
    target = later.replace(microsecond=0)
    return target == base or target == base + timedelta(seconds=1)


def parse_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name. Raises ValueError for unknown names."""
    try:
        return ZoneInfo(name)
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown time zone: {name!r}") from exc
