from __future__ import annotations


class RailPagerError(Exception):
    """Base exception for all rail pager relay errors."""


class DecodeError(RailPagerError):
    """Raised when a pager frame or telegram cannot be turned into a reading."""


class FrameError(DecodeError):
    """Raised when a UDP frame does not have the expected segment layout."""


class InvalidBodyError(DecodeError):
    """Raised when a movement telegram has a non-numeric or truncated field.

    ``fields`` holds the raw (train number, speed, mileage) substrings.
    """

    def __init__(self, fields: tuple[str, str, str], message: str = "") -> None:
        self.fields = fields
        super().__init__(message or f"Invalid POCSAG message body: {fields!r}")


class MissingCoordinatesError(DecodeError):
    """Raised when a position telegram carries no usable coordinates."""

    def __init__(self, raw_message: str, message: str = "") -> None:
        self.raw_message = raw_message
        super().__init__(message or f"Missing coordinates in telegram: {raw_message!r}")


class SocketBindError(RailPagerError):
    """Raised when the UDP listener cannot acquire its port."""

    def __init__(self, host: str, port: int, reason: str = "") -> None:
        self.host = host
        self.port = port
        super().__init__(f"Cannot bind UDP {host}:{port}" + (f" ({reason})" if reason else ""))


class ProtocolError(RailPagerError):
    """Raised when a push-channel client sends a malformed message."""


class SubscriberConnectionError(RailPagerError):
    """Raised inside the subscriber client when the push channel fails."""


class ConfigError(RailPagerError):
    """Raised when environment configuration fails validation."""
