from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket

from rail_pager.domain.entities import SubscriberConnection, TrainState
from rail_pager.domain.exceptions import ProtocolError
from rail_pager.infrastructure.envelopes import (
    ErrorMessage,
    GetAllTrainsRequest,
    OutboundMessage,
    PingRequest,
    PongMessage,
    SubscribeTrainRequest,
    TrainPositionMessage,
    TrainPositionsMessage,
    UnsubscribeTrainRequest,
    decode_inbound,
    encode_outbound,
)
from rail_pager.infrastructure.store import TrainStateStore
from rail_pager.infrastructure.time_utils import epoch_millis, now_utc

logger = logging.getLogger(__name__)

TRAINS_PATH = "/trains"
DEFAULT_QUEUE_SIZE = 256

WS_GOING_AWAY = 1001


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class _Connection:
    """A SubscriberConnection plus the transport-side state the server needs."""

    def __init__(
        self,
        info: SubscriberConnection,
        websocket: WebSocket,
        loop: asyncio.AbstractEventLoop,
        queue_size: int,
    ) -> None:
        self.info = info
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.state = ConnectionState.CONNECTING
        self.unsubscribe: Callable[[], None] | None = None
        self.sender: asyncio.Task[None] | None = None
        self.dropped = 0


class BroadcastServer:
    """Push-channel server: snapshot on connect, filtered deltas afterwards.

    Each connection owns a bounded send queue drained by its own task, so a
    slow subscriber only ever delays itself. Store callbacks may fire on any
    thread; they hand messages to the connection's loop thread-safely.

    Liveness probing is done at the protocol level by uvicorn
    (``ws_ping_interval`` / ``ws_ping_timeout``, see ``app.uvicorn_options``):
    a peer that stops answering pings is disconnected and torn down here like
    any other closure. Application silence alone never closes a connection.
    """

    def __init__(
        self,
        store: TrainStateStore,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._store = store
        self._queue_size = queue_size
        self._connections: dict[str, _Connection] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def routes(self) -> list[WebSocketRoute]:
        return [WebSocketRoute(TRAINS_PATH, self.handle)]

    async def close(self) -> None:
        """Close every open connection."""
        for conn in list(self._connections.values()):
            await self._close(conn, WS_GOING_AWAY, "Server shutdown")
        logger.info("Train WebSocket server shutdown")

    def stats(self) -> dict[str, Any]:
        return {
            "connectedClients": len(self._connections),
            "activeTrains": self._store.count,
        }

    @property
    def connections(self) -> list[SubscriberConnection]:
        return [c.info for c in self._connections.values()]

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def handle(self, websocket: WebSocket) -> None:
        """WebSocket endpoint for /trains."""
        await websocket.accept()
        conn = self._open(websocket)
        code: int | None = None
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    code = message.get("code")
                    break
                text = message.get("text")
                if text is None and message.get("bytes") is not None:
                    text = message["bytes"].decode("utf-8", errors="replace")
                if text is not None:
                    self._handle_text(conn, text)
        finally:
            await self._teardown(conn)
            logger.info(
                "Client %s disconnected. Code: %s. Total clients: %d",
                conn.info.id,
                code,
                len(self._connections),
            )

    def _open(self, websocket: WebSocket) -> _Connection:
        now = now_utc()
        info = SubscriberConnection(
            id=f"client-{uuid4().hex[:12]}",
            connected_at=now,
            last_liveness_at=now,
        )
        conn = _Connection(info, websocket, asyncio.get_running_loop(), self._queue_size)
        self._connections[info.id] = conn
        conn.state = ConnectionState.OPEN
        conn.sender = asyncio.create_task(self._send_loop(conn))

        # No await between these steps: the snapshot is queued ahead of any delta.
        conn.unsubscribe = self._store.subscribe(lambda train: self._on_update(conn, train))
        self._put(conn, encode_outbound(TrainPositionsMessage(self._store.get_all())))
        self._put(
            conn,
            encode_outbound(
                PongMessage({"message": "Connected to Train WebSocket Server", "clientId": info.id})
            ),
        )
        logger.info("Client %s connected. Total clients: %d", info.id, len(self._connections))
        return conn

    def _on_update(self, conn: _Connection, train: TrainState) -> None:
        if conn.info.wants(train.id):
            self._enqueue(conn, TrainPositionMessage(train))

    def _handle_text(self, conn: _Connection, text: str) -> None:
        conn.info.last_liveness_at = now_utc()
        try:
            request = decode_inbound(text)
        except ProtocolError as exc:
            logger.warning("Invalid message from client %s: %s", conn.info.id, exc)
            self._enqueue(conn, ErrorMessage(str(exc)))
            return

        if isinstance(request, PingRequest):
            self._enqueue(conn, PongMessage({"timestamp": epoch_millis(now_utc())}))
        elif isinstance(request, SubscribeTrainRequest):
            conn.info.subscriptions.add(request.train_id)
            logger.info("Client %s subscribed to train %s", conn.info.id, request.train_id)
        elif isinstance(request, UnsubscribeTrainRequest):
            if request.train_id in conn.info.subscriptions:
                conn.info.subscriptions.discard(request.train_id)
                logger.info("Client %s unsubscribed from train %s", conn.info.id, request.train_id)
        elif isinstance(request, GetAllTrainsRequest):
            self._enqueue(conn, TrainPositionsMessage(self._store.get_all()))
        else:
            logger.info("Unknown message type: %s from client %s", request.raw_type, conn.info.id)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _enqueue(self, conn: _Connection, message: OutboundMessage) -> None:
        if conn.state is not ConnectionState.OPEN:
            return
        text = encode_outbound(message)
        try:
            conn.loop.call_soon_threadsafe(self._put, conn, text)
        except RuntimeError:
            # Loop already closed during shutdown.
            logger.debug("Dropping message for client %s: event loop closed", conn.info.id)

    def _put(self, conn: _Connection, text: str) -> None:
        if conn.state is not ConnectionState.OPEN:
            return
        if conn.queue.full():
            conn.queue.get_nowait()
            conn.dropped += 1
            logger.warning(
                "Client %s send queue full, dropped oldest message (%d dropped)",
                conn.info.id,
                conn.dropped,
            )
        conn.queue.put_nowait(text)

    async def _send_loop(self, conn: _Connection) -> None:
        while True:
            text = await conn.queue.get()
            try:
                await conn.websocket.send_text(text)
            except Exception as exc:
                # The receive side sees the disconnect and tears the connection down.
                logger.warning("Send to client %s failed: %s", conn.info.id, exc)
                return

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _close(self, conn: _Connection, code: int, reason: str) -> None:
        if conn.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        conn.state = ConnectionState.CLOSING
        try:
            await conn.websocket.close(code=code, reason=reason)
        except Exception as exc:
            logger.debug("Close for client %s failed: %s", conn.info.id, exc)
        await self._teardown(conn)

    async def _teardown(self, conn: _Connection) -> None:
        if conn.state is ConnectionState.CLOSED:
            return
        conn.state = ConnectionState.CLOSED
        if conn.unsubscribe is not None:
            conn.unsubscribe()
            conn.unsubscribe = None
        if conn.sender is not None:
            conn.sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await conn.sender
            conn.sender = None
        self._connections.pop(conn.info.id, None)
