"""
MCP Server for Standing Desk Control.

Exposes the ble_desk session API (height, relative and absolute moves, stop)
as Model Context Protocol tools that LLMs can call.
"""

from desk_mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
