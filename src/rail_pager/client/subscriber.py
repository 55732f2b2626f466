from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

import websockets
from websockets.exceptions import WebSocketException

from rail_pager.domain.exceptions import ProtocolError, SubscriberConnectionError
from rail_pager.domain.value_objects import MessageType
from rail_pager.infrastructure.envelopes import (
    GetAllTrainsRequest,
    InboundMessage,
    PingRequest,
    SubscribeTrainRequest,
    UnsubscribeTrainRequest,
    decode_outbound,
    encode_inbound,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "ws://localhost:8080/trains"
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_PING_INTERVAL = 30.0  # seconds

T = TypeVar("T")


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class _Listeners(Generic[T]):
    """Callback registry keyed by subscription id; O(1) unsubscribe."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: dict[int, Callable[[T], None]] = {}
        self._ids = itertools.count(1)

    def add(self, callback: Callable[[T], None]) -> Callable[[], None]:
        key = next(self._ids)
        self._callbacks[key] = callback

        def remove() -> None:
            self._callbacks.pop(key, None)

        return remove

    def notify(self, value: T) -> None:
        for callback in list(self._callbacks.values()):
            try:
                callback(value)
            except Exception:
                logger.exception("%s callback failed", self._name)


class SubscriberClient:
    """Keeps a consumer attached to the broadcast server.

    After an unexpected closure the client reconnects with exponential backoff,
    ``base_delay * 2 ** (attempt - 1)``, until ``max_attempts`` consecutive
    attempts have failed. It then stays disconnected until ``connect()`` is
    called again. A successful connection resets the attempt counter.
    """

    def __init__(
        self,
        url: str = DEFAULT_SERVER_URL,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        ping_interval: float | None = DEFAULT_PING_INTERVAL,
        connect: Callable[[str], Awaitable[Any]] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._base_delay = base_delay
        self._max_attempts = max_attempts
        self._ping_interval = ping_interval
        self._connect = connect or websockets.connect
        self._sleep = sleep
        self._ws: Any = None
        self._runner: asyncio.Task[None] | None = None
        self._closing = False
        self.state = ClientState.DISCONNECTED
        self.reconnect_attempts = 0
        self._update_listeners: _Listeners[dict[str, Any]] = _Listeners("train update")
        self._snapshot_listeners: _Listeners[list[dict[str, Any]]] = _Listeners("snapshot")
        self._connection_listeners: _Listeners[bool] = _Listeners("connection change")

    # ------------------------------------------------------------------
    # Subscription points
    # ------------------------------------------------------------------

    def on_update(self, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        return self._update_listeners.add(callback)

    def on_snapshot(self, callback: Callable[[list[dict[str, Any]]], None]) -> Callable[[], None]:
        return self._snapshot_listeners.add(callback)

    def on_connection_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._connection_listeners.add(callback)

    @property
    def is_connected(self) -> bool:
        return self.state is ClientState.CONNECTED

    def reconnect_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt number ``attempt`` (1-based)."""
        return self._base_delay * 2 ** (attempt - 1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start (or restart) the connection loop. Resets the attempt counter."""
        self._closing = False
        self.reconnect_attempts = 0
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """Close intentionally. No reconnect is scheduled afterwards."""
        self._closing = True
        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close(code=1000, reason="Client disconnect")
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._runner
        self._runner = None
        self._ws = None
        self._set_state(ClientState.DISCONNECTED)

    async def wait(self) -> None:
        """Wait until the connection loop stops (gave up or disconnected)."""
        if self._runner is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._runner

    async def _run(self) -> None:
        while not self._closing:
            self._set_state(ClientState.CONNECTING)
            try:
                await self._attach()
            except SubscriberConnectionError as exc:
                logger.warning("Train WebSocket connection lost: %s", exc)
            self._set_state(ClientState.DISCONNECTED)

            if self._closing:
                break
            if self.reconnect_attempts >= self._max_attempts:
                logger.error(
                    "Giving up after %d reconnect attempts to %s", self.reconnect_attempts, self._url
                )
                break
            self.reconnect_attempts += 1
            delay = self.reconnect_delay(self.reconnect_attempts)
            logger.info(
                "Attempting to reconnect in %.1fs (attempt %d/%d)",
                delay,
                self.reconnect_attempts,
                self._max_attempts,
            )
            await self._sleep(delay)

    async def _attach(self) -> None:
        try:
            ws = await self._connect(self._url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise SubscriberConnectionError(f"connect to {self._url} failed: {exc}") from exc

        self._ws = ws
        self.reconnect_attempts = 0
        logger.info("Connected to Train WebSocket Server at %s", self._url)
        self._set_state(ClientState.CONNECTED)

        pinger = asyncio.create_task(self._auto_ping()) if self._ping_interval else None
        try:
            async for raw in ws:
                self._handle_message(raw)
        except (OSError, WebSocketException) as exc:
            raise SubscriberConnectionError(str(exc)) from exc
        finally:
            self._ws = None
            if pinger is not None:
                pinger.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await pinger
        logger.info("Train WebSocket connection closed by server")

    def _set_state(self, state: ClientState) -> None:
        was_connected = self.state is ClientState.CONNECTED
        self.state = state
        now_connected = state is ClientState.CONNECTED
        if was_connected != now_connected:
            self._connection_listeners.notify(now_connected)

    async def _auto_ping(self) -> None:
        assert self._ping_interval is not None
        while True:
            await asyncio.sleep(self._ping_interval)
            await self.ping()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _handle_message(self, raw: str | bytes) -> None:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        try:
            msg_type, data = decode_outbound(text)
        except ProtocolError as exc:
            logger.error("Error parsing WebSocket message: %s", exc)
            return

        if msg_type == MessageType.TRAIN_POSITION.value:
            if data:
                self._update_listeners.notify(data)
        elif msg_type == MessageType.TRAIN_POSITIONS.value:
            if data is not None:
                self._snapshot_listeners.notify(data)
        elif msg_type == MessageType.PONG.value:
            logger.debug("Server ping response received: %s", data)
        elif msg_type == MessageType.ERROR.value:
            logger.error("Server error: %s", data)
        else:
            logger.info("Unknown message type: %s", msg_type)

    async def _send(self, request: InboundMessage) -> bool:
        ws = self._ws
        if ws is None or not self.is_connected:
            return False
        try:
            await ws.send(encode_inbound(request))
        except (OSError, WebSocketException) as exc:
            logger.warning("Send failed: %s", exc)
            return False
        return True

    async def subscribe_train(self, train_id: str) -> bool:
        return await self._send(SubscribeTrainRequest(train_id=train_id))

    async def unsubscribe_train(self, train_id: str) -> bool:
        return await self._send(UnsubscribeTrainRequest(train_id=train_id))

    async def request_all_trains(self) -> bool:
        return await self._send(GetAllTrainsRequest())

    async def ping(self) -> bool:
        return await self._send(PingRequest())
