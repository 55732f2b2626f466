from __future__ import annotations

import json
import logging

from mcp import types
from mcp.server.fastmcp import FastMCP

from rail_pager.application.broadcast import BroadcastServer
from rail_pager.domain.value_objects import TrainStatus
from rail_pager.infrastructure.store import TrainStateStore

logger = logging.getLogger(__name__)

_RESULT_URI = "mcp://rail-pager/result"


def _as_resource(json_str: str) -> list[types.EmbeddedResource]:
    """Wrap a JSON string as an embedded resource so the LLM does not narrate it."""
    return [
        types.EmbeddedResource(
            type="resource",
            resource=types.TextResourceContents(
                uri=_RESULT_URI,  # type: ignore[arg-type]
                mimeType="application/json",
                text=json_str,
            ),
        )
    ]


def _error_json(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


def _handle_exception(exc: Exception) -> list[types.EmbeddedResource]:
    if isinstance(exc, ValueError):
        return _as_resource(_error_json(str(exc)))
    logger.exception("Unexpected error in MCP tool: %s", exc)
    return _as_resource(_error_json("An unexpected error occurred."))


def _validate_status(status: str | None) -> TrainStatus | None:
    if status is None:
        return None
    try:
        return TrainStatus(status.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown train status: {status}")


def register_tools(mcp: FastMCP, store: TrainStateStore, broadcast: BroadcastServer) -> None:
    """Bind all @mcp.tool decorators. Called once during server setup."""

    @mcp.tool()
    async def list_trains(status: str | None = None) -> list[types.EmbeddedResource]:
        """List the latest known state of every tracked train.

        Args:
            status: Optional status filter: "active", "stopped" or "maintenance".
        """
        try:
            wanted = _validate_status(status)
            trains = [
                t.to_dict() for t in store.get_all() if wanted is None or t.status is wanted
            ]
            result = {"trains": trains, "count": len(trains)}
            return _as_resource(json.dumps(result, ensure_ascii=False))
        except Exception as exc:
            return _handle_exception(exc)

    @mcp.tool()
    async def get_train(train_id: str) -> list[types.EmbeddedResource]:
        """Get the latest known state of one train.

        Args:
            train_id: Train id as published on the push channel, e.g. "train-69012".
        """
        try:
            if not train_id.strip():
                return _as_resource(_error_json("train_id cannot be empty"))
            train = store.get_one(train_id.strip())
            if train is None:
                return _as_resource(_error_json(f"Train not found: {train_id}"))
            return _as_resource(json.dumps(train.to_dict(), ensure_ascii=False))
        except Exception as exc:
            return _handle_exception(exc)

    @mcp.tool()
    async def get_server_stats() -> list[types.EmbeddedResource]:
        """Get push-channel client and tracked train counts."""
        try:
            return _as_resource(json.dumps(broadcast.stats(), ensure_ascii=False))
        except Exception as exc:
            return _handle_exception(exc)
