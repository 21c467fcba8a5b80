"""HTTP surface of the gateway."""

from __future__ import annotations

from btstream.server.http_server import GatewayServer, create_app, create_gateway

__all__ = ["GatewayServer", "create_app", "create_gateway"]
