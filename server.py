#!/usr/bin/env python3
"""Rail Pager Relay — repository root entry point.

Usage:
    uv run server.py                        # UDP bridge on :9999, push channel on :8080
    USE_MOCK_DATA=true uv run server.py     # synthetic telegrams instead of UDP
"""
from __future__ import annotations

import logging
import sys

import uvicorn
from starlette.middleware.cors import CORSMiddleware

from rail_pager.app import create_app, uvicorn_options
from rail_pager.config import Settings
from rail_pager.domain.exceptions import ConfigError

if __name__ == "__main__":
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = create_app(settings)
    # Browser dashboards query /mcp cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    print(f"Train WebSocket server listening on ws://{settings.host}:{settings.ws_port}/trains")
    print(f"UDP bridge port: {settings.udp_port} (mock data: {settings.use_mock_data})")
    uvicorn.run(app, **uvicorn_options(settings))
