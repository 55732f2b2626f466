from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from rail_pager.application.broadcast import BroadcastServer
from rail_pager.infrastructure.store import TrainStateStore
from rail_pager.mcp.tools import register_tools


def create_mcp_app(store: TrainStateStore, broadcast: BroadcastServer) -> FastMCP:
    """Create the FastMCP query surface over an existing store."""
    mcp = FastMCP("Rail Pager Relay", stateless_http=True)
    register_tools(mcp, store, broadcast)
    return mcp
