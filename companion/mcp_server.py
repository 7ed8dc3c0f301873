"""FastMCP server exposing read-only companion state as MCP tools.

Tools:
  - get_mood()                 — current mood, tier and header status
  - recent_messages(limit)     — chat history, newest first
  - recent_memories(limit)     — sampled memories, newest first

The active Companion is set via set_companion() for tests, or built from
settings when run as __main__.

Usage:
    python -m companion.mcp_server
"""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from companion.session import Companion

mcp = FastMCP("companion")

_companion: Companion | None = None


def set_companion(companion: Companion) -> None:
    """Replace the active companion (used in tests)."""
    global _companion
    _companion = companion


def get_companion() -> Companion:
    if _companion is None:
        raise RuntimeError("No companion set; call set_companion() first")
    return _companion


@mcp.tool()
def get_mood() -> dict:
    """Return the companion's mood (0-100), tier and status line."""
    status = get_companion().status()
    return {"mood": status["mood"], "tier": status["tier"], "status": status["status"]}


@mcp.tool()
def recent_messages(limit: int = 10) -> list[dict]:
    """Return the most recent chat messages, newest first."""
    return [m.model_dump(mode="json") for m in get_companion().recent_messages(limit)]


@mcp.tool()
def recent_memories(limit: int = 10) -> list[dict]:
    """Return the most recent memories, newest first."""
    return [m.model_dump(mode="json") for m in get_companion().recent_memories(limit)]


if __name__ == "__main__":
    from companion.app import build_companion
    from companion.config import load_settings

    set_companion(build_companion(load_settings()))
    mcp.run()
