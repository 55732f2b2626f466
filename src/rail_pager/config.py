from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from zoneinfo import ZoneInfo

from rail_pager.domain.exceptions import ConfigError
from rail_pager.infrastructure.time_utils import parse_timezone

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a positive integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {raw!r}")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class Settings:
    """Process configuration, read once from the environment at startup."""

    host: str = "0.0.0.0"
    ws_port: int = 8080
    udp_host: str = "0.0.0.0"
    udp_port: int = 9999
    log_level: str = "INFO"
    use_mock_data: bool = False
    mock_data_interval_ms: int = 5000
    ping_interval: int = 30  # seconds
    liveness_timeout: int = 10  # seconds
    stats_interval: int = 30  # seconds
    correlate_readings: bool = True
    frame_tz: ZoneInfo = ZoneInfo("Asia/Shanghai")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build Settings from environment variables. Raises ConfigError on invalid values."""
        env = os.environ if env is None else env
        tz_name = env.get("FRAME_TZ", "Asia/Shanghai")
        try:
            frame_tz = parse_timezone(tz_name)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return cls(
            host=env.get("HOST", "0.0.0.0"),
            ws_port=_positive_int(env, "WS_PORT", 8080),
            udp_host=env.get("UDP_HOST", "0.0.0.0"),
            udp_port=_positive_int(env, "UDP_PORT", 9999),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            use_mock_data=_flag(env, "USE_MOCK_DATA", False),
            mock_data_interval_ms=_positive_int(env, "MOCK_DATA_INTERVAL", 5000),
            ping_interval=_positive_int(env, "PING_INTERVAL", 30),
            liveness_timeout=_positive_int(env, "LIVENESS_TIMEOUT", 10),
            stats_interval=_positive_int(env, "STATS_INTERVAL", 30),
            correlate_readings=_flag(env, "CORRELATE_READINGS", True),
            frame_tz=frame_tz,
        )
