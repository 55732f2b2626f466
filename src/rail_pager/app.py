from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.routing import Mount

from rail_pager.application.broadcast import BroadcastServer
from rail_pager.application.ingest_service import IngestService
from rail_pager.config import Settings
from rail_pager.infrastructure.mock_feed import MockFeed
from rail_pager.infrastructure.store import TrainStateStore
from rail_pager.infrastructure.udp_bridge import UdpBridge
from rail_pager.mcp import create_mcp_app

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the process runs, sharing one explicitly constructed store."""

    settings: Settings
    store: TrainStateStore
    ingest: IngestService
    bridge: UdpBridge
    mock_feed: MockFeed
    broadcast: BroadcastServer
    mcp: FastMCP


def build_services(settings: Settings) -> Services:
    store = TrainStateStore()
    ingest = IngestService(store, correlate=settings.correlate_readings)
    bridge = UdpBridge(ingest, host=settings.udp_host, port=settings.udp_port, tz=settings.frame_tz)
    broadcast = BroadcastServer(store)
    return Services(
        settings=settings,
        store=store,
        ingest=ingest,
        bridge=bridge,
        mock_feed=MockFeed(bridge, interval=settings.mock_data_interval_ms / 1000),
        broadcast=broadcast,
        mcp=create_mcp_app(store, broadcast),
    )


def uvicorn_options(settings: Settings) -> dict[str, Any]:
    """Keyword arguments for ``uvicorn.run``.

    uvicorn pings every WebSocket peer each ``ping_interval`` seconds and
    closes the ones that leave a ping unanswered for ``liveness_timeout``.
    """
    return {
        "host": settings.host,
        "port": settings.ws_port,
        "ws_ping_interval": float(settings.ping_interval),
        "ws_ping_timeout": float(settings.liveness_timeout),
        "log_level": settings.log_level.lower(),
    }


async def _log_stats(services: Services) -> None:
    source = "MOCK" if services.settings.use_mock_data else "UDP"
    while True:
        await asyncio.sleep(services.settings.stats_interval)
        stats = services.broadcast.stats()
        bridge = services.bridge.stats
        logger.info(
            "Server Stats - Clients: %d, Trains: %d, Data Source: %s, "
            "Frames: %d received / %d decoded / %d dropped / %d ignored",
            stats["connectedClients"],
            stats["activeTrains"],
            source,
            bridge.received,
            bridge.decoded,
            bridge.dropped,
            bridge.ignored,
        )


def create_app(settings: Settings | None = None, services: Services | None = None) -> Starlette:
    """Create the ASGI app: /trains push channel plus the MCP endpoint at /mcp.

    Startup binds the UDP bridge (or starts the mock feed). A SocketBindError
    aborts the lifespan, so the process never serves without its data source.
    """
    if services is None:
        services = build_services(settings or Settings.from_env())
    settings = services.settings
    mcp_app = services.mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with contextlib.AsyncExitStack() as stack:
            await stack.enter_async_context(services.mcp.session_manager.run())
            if settings.use_mock_data:
                logger.info("[Main] Using mock data service")
                await services.mock_feed.start()
                stack.push_async_callback(services.mock_feed.stop)
            else:
                logger.info("[Main] Using real UDP bridge")
                await services.bridge.start()
                stack.callback(services.bridge.stop)
            stack.push_async_callback(services.broadcast.close)
            stats_task = asyncio.create_task(_log_stats(services))
            stack.callback(stats_task.cancel)
            logger.info("Servers started successfully!")
            yield
            logger.info("Shutting down servers...")

    app = Starlette(
        routes=[*services.broadcast.routes(), Mount("/", app=mcp_app)],
        lifespan=lifespan,
    )
    app.state.services = services
    return app
