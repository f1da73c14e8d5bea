"""
MCP Server for IKEA Standing Desk Control.

Exposes desk control as tools that LLMs can call via the Model Context Protocol.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastmcp import Context, FastMCP

from ble_desk import (
    MAX_POSITION,
    MIN_POSITION,
    DeskCommunicationError,
    DeskConnectionError,
    DeskDiscoveryError,
    DeskError,
    DeskSession,
    DeskSettings,
    DeskStalledError,
    open_desk,
)
from ble_desk.protocol import mm_to_position

MIN_HEIGHT_MM = MIN_POSITION // 10
MAX_HEIGHT_MM = MAX_POSITION // 10
MAX_STEP_INCHES = 10

# Create MCP server
mcp = FastMCP(
    "Standing Desk Controller",
    instructions="Control your IKEA Idåsen / Linak standing desk via BLE. "
    "Tools: get_height (check position), move_up/move_down (relative movement), "
    "move_to_height (absolute positioning), stop_desk (emergency stop).",
)


@asynccontextmanager
async def get_desk() -> AsyncIterator[DeskSession]:
    """Context manager for desk connection with automatic cleanup."""
    async with open_desk(settings=DeskSettings.from_env()) as desk:
        yield desk


def _height(position: int) -> str:
    mm = position / 10
    return f'{mm:.0f}mm ({mm / 25.4:.1f}")'


def _error_message(e: DeskError) -> str:
    if isinstance(e, DeskDiscoveryError):
        return "Error: Desk not found. Is it powered on?"
    if isinstance(e, DeskStalledError):
        return f"Collision detected! Stopped at {_height(e.position)}. Target was {_height(e.target)}."
    if isinstance(e, DeskConnectionError):
        return f"Error: Could not connect to desk - {e}"
    if isinstance(e, DeskCommunicationError):
        return f"Error: Communication failed - {e}"
    return f"Error: {e}"


async def _move_by(inches: float) -> str:
    async with get_desk() as desk:
        start = await desk.position()
        target = start + mm_to_position(inches * 25.4)
        target = max(MIN_POSITION, min(MAX_POSITION, target))
        result = await desk.move_to(target)
        moved = abs(result.position - start) / 254
        direction = "up" if inches > 0 else "down"
        return f'Moved {direction} to {_height(result.position)}. Movement: {moved:.1f}"'


@mcp.tool()
async def get_height(ctx: Context) -> str:
    """
    Get the current desk height.

    Returns the height in both millimeters and inches.
    """
    try:
        async with get_desk() as desk:
            position = await desk.position()
            return f"Current height: {_height(position)}"
    except DeskError as e:
        return _error_message(e)


@mcp.tool()
async def move_up(ctx: Context, inches: float = 1.0) -> str:
    """
    Move the desk up by the specified number of inches.

    Args:
        inches: How many inches to move up (default: 1.0)

    Returns:
        Result of the movement including final height.
    """
    if inches <= 0:
        return "Error: inches must be positive"
    if inches > MAX_STEP_INCHES:
        return f"Error: Maximum movement is {MAX_STEP_INCHES} inches at a time for safety"

    try:
        return await _move_by(inches)
    except DeskError as e:
        return _error_message(e)


@mcp.tool()
async def move_down(ctx: Context, inches: float = 1.0) -> str:
    """
    Move the desk down by the specified number of inches.

    Args:
        inches: How many inches to move down (default: 1.0)

    Returns:
        Result of the movement including final height.
    """
    if inches <= 0:
        return "Error: inches must be positive"
    if inches > MAX_STEP_INCHES:
        return f"Error: Maximum movement is {MAX_STEP_INCHES} inches at a time for safety"

    try:
        return await _move_by(-inches)
    except DeskError as e:
        return _error_message(e)


@mcp.tool()
async def move_to_height(ctx: Context, height_mm: int) -> str:
    """
    Move the desk to a specific height in millimeters.

    Args:
        height_mm: Target height in millimeters (valid range: 620-1270mm)

    Returns:
        Result of the movement including final height.
    """
    if height_mm < MIN_HEIGHT_MM:
        return f'Error: Minimum height is {MIN_HEIGHT_MM}mm ({MIN_HEIGHT_MM / 25.4:.1f}")'
    if height_mm > MAX_HEIGHT_MM:
        return f'Error: Maximum height is {MAX_HEIGHT_MM}mm ({MAX_HEIGHT_MM / 25.4:.1f}")'

    try:
        async with get_desk() as desk:
            result = await desk.move_to(mm_to_position(height_mm))
            error_mm = abs(result.error) / 10
            return (
                f"Moved to {_height(result.position)}. "
                f"Target was {height_mm}mm, error: {error_mm:.0f}mm"
            )
    except DeskError as e:
        return _error_message(e)


@mcp.tool()
async def stop_desk(ctx: Context) -> str:
    """
    Emergency stop - immediately halt desk movement.

    Use this if the desk is moving and you need to stop it immediately.
    """
    try:
        async with get_desk() as desk:
            await desk.stop()
            position = await desk.position()
            return f"Desk stopped at {_height(position)}"
    except DeskError as e:
        return _error_message(e)


def run_server():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    run_server()
