"""NexTrip MCP Server for tracking Metro Transit stops."""

import asyncio
import contextlib
import logging
from datetime import datetime

from mcp.server import Server
from mcp.types import Tool, TextContent

from .board import Board
from .bookmarks import BookmarkStore
from .config import settings
from .models import Departure, RouteDirection, StopData
from .nextrip_client import NexTripClient
from .stop_tracker import StopTracker, minutes_until

logger = logging.getLogger(__name__)

# Create MCP server
app = Server("nextrip-mcp")

# Set up by main() once the feed client is open
board: Board | None = None
bookmarks = BookmarkStore()

STOP_NUMBER_PROPERTY = {
    "type": "integer",
    "description": "Metro Transit stop number (e.g., 17940)",
}


def format_departure(dep: Departure, now: datetime | None = None) -> str:
    """Format a departure record for display."""
    minutes = minutes_until(dep.departure_time, now)
    when = "Due" if minutes <= 0 else f"{minutes} min"
    description = f" to {dep.description}" if dep.description else ""
    live = "" if dep.actual else " (scheduled)"
    return f"{dep.route} {dep.direction}{description} at {dep.time_formatted()} ({when}){live}"


def format_stop_header(stop: StopTracker) -> str:
    """Format the title line of a stop card."""
    name = stop.stop_name or "Unknown"
    updated = stop.update_time_string or "never"
    return f"#{stop.stop_number} {name} (updated {updated})"


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="add_stop",
            description="Start tracking live departures for a stop",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="close_stop",
            description="Stop tracking a stop and drop its notifications",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="list_stops",
            description="List the tracked stops with their notification status",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_departures",
            description="Show the latest departures for a tracked stop",
            inputSchema={
                "type": "object",
                "properties": {
                    "stop_number": STOP_NUMBER_PROPERTY,
                    "show_all": {
                        "type": "boolean",
                        "description": "Include departures on untracked routes (default: false)",
                        "default": False,
                    },
                },
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="list_route_directions",
            description="List the routes and directions serving a stop and whether each is tracked",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="set_route_filter",
            description="Choose which route-directions at a stop to ignore",
            inputSchema={
                "type": "object",
                "properties": {
                    "stop_number": STOP_NUMBER_PROPERTY,
                    "untracked": {
                        "type": "array",
                        "description": "Route-directions to ignore; an empty list tracks everything",
                        "items": {
                            "type": "object",
                            "properties": {
                                "route": {"type": "string", "description": "Route (e.g., '21')"},
                                "direction": {
                                    "type": "string",
                                    "description": "Direction (e.g., 'EASTBOUND')",
                                },
                            },
                            "required": ["route", "direction"],
                        },
                    },
                },
                "required": ["stop_number", "untracked"],
            },
        ),
        Tool(
            name="set_notification",
            description="Notify a number of minutes before the next tracked departure, every refresh",
            inputSchema={
                "type": "object",
                "properties": {
                    "stop_number": STOP_NUMBER_PROPERTY,
                    "lead_minutes": {
                        "type": "integer",
                        "description": "Minutes before departure to notify",
                    },
                },
                "required": ["stop_number", "lead_minutes"],
            },
        ),
        Tool(
            name="clear_notification",
            description="Turn off notifications for a stop",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="get_notification_status",
            description="Show the next notification scheduled for a stop",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="bookmark_stop",
            description="Save a stop to the bookmarks",
            inputSchema={
                "type": "object",
                "properties": {
                    "stop_number": STOP_NUMBER_PROPERTY,
                    "stop_name": {
                        "type": "string",
                        "description": "Name to save (default: the tracked stop's name)",
                    },
                },
                "required": ["stop_number"],
            },
        ),
        Tool(
            name="list_bookmarks",
            description="List bookmarked stops",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="remove_bookmark",
            description="Remove a stop from the bookmarks",
            inputSchema={
                "type": "object",
                "properties": {"stop_number": STOP_NUMBER_PROPERTY},
                "required": ["stop_number"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "list_bookmarks":
            result = _list_bookmarks(bookmarks, arguments)
        elif name == "remove_bookmark":
            result = _remove_bookmark(bookmarks, arguments)
        elif board is None:
            result = "Error: the stop board is not running"
        elif name == "add_stop":
            result = await _add_stop(board, arguments)
        elif name == "close_stop":
            result = _close_stop(board, arguments)
        elif name == "list_stops":
            result = _list_stops(board, arguments)
        elif name == "get_departures":
            result = _get_departures(board, arguments)
        elif name == "list_route_directions":
            result = _list_route_directions(board, arguments)
        elif name == "set_route_filter":
            result = _set_route_filter(board, arguments)
        elif name == "set_notification":
            result = _set_notification(board, arguments)
        elif name == "clear_notification":
            result = _clear_notification(board, arguments)
        elif name == "get_notification_status":
            result = _get_notification_status(board, arguments)
        elif name == "bookmark_stop":
            result = _bookmark_stop(board, bookmarks, arguments)
        else:
            result = f"Unknown tool: {name}"

        return [TextContent(type="text", text=result)]
    except Exception as e:
        error_msg = f"Error: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return [TextContent(type="text", text=error_msg)]


def _stop_number(arguments: dict) -> int:
    value = arguments.get("stop_number")
    if value is None or value == "":
        raise ValueError("'stop_number' parameter is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid stop number: {value!r}")


async def _add_stop(board: Board, arguments: dict) -> str:
    """Add a stop card."""
    stop_number = _stop_number(arguments)
    if board.has_stop(stop_number):
        return f"Stop {stop_number} is already tracked."

    stop = await board.add_stop(stop_number)
    lines = [f"Tracking {format_stop_header(stop)}"]
    if not stop.is_loaded:
        lines.append("  Departures could not be loaded yet; they will be retried on the next refresh.")
    else:
        lines.append(f"  {len(stop.latest_departures)} upcoming departure(s)")
    return "\n".join(lines)


def _close_stop(board: Board, arguments: dict) -> str:
    """Close a stop card."""
    stop_number = _stop_number(arguments)
    board.close_stop(stop_number)
    return f"Stopped tracking stop {stop_number}."


def _list_stops(board: Board, arguments: dict) -> str:
    """List the stop cards on the board."""
    if not board.stops:
        return "No stops are being tracked."

    lines = [f"Tracking {len(board.stops)} stop(s):\n"]
    for stop in board.stops:
        request = board.scheduler.status_for(stop)
        noti_str = f" [notify {request.lead_minutes} min ahead]" if request else ""
        lines.append(f"• {format_stop_header(stop)}{noti_str}")
    return "\n".join(lines)


def _get_departures(board: Board, arguments: dict) -> str:
    """Get departures for a tracked stop."""
    stop = board.get_stop(_stop_number(arguments))
    show_all = arguments.get("show_all", False)

    if not stop.is_loaded:
        return f"Departures for stop {stop.stop_number} have not loaded yet."

    departures = stop.latest_departures if show_all else stop.filter_tracked(stop.latest_departures)
    lines = [f"Departures at {format_stop_header(stop)}:\n"]

    if not departures:
        lines.append("No departures found.")
    else:
        for dep in departures[:15]:  # Limit to 15
            lines.append(f"  {format_departure(dep)}")

        if len(departures) > 15:
            lines.append(f"\n  ... and {len(departures) - 15} more")

    return "\n".join(lines)


def _list_route_directions(board: Board, arguments: dict) -> str:
    """List route-directions serving a stop."""
    stop = board.get_stop(_stop_number(arguments))
    if not stop.is_loaded:
        return f"Departures for stop {stop.stop_number} have not loaded yet."
    if not stop.all_route_directions:
        return f"No routes currently serve stop {stop.stop_number}."

    lines = [f"Routes at {format_stop_header(stop)}:\n"]
    for rd in stop.all_route_directions:
        status = "tracked" if stop.is_tracked(rd) else "ignored"
        count = len(stop.departures_for(rd))
        lines.append(f"  {rd} - {count} departure(s) [{status}]")
    return "\n".join(lines)


def _set_route_filter(board: Board, arguments: dict) -> str:
    """Replace the untracked route-directions of a stop."""
    stop_number = _stop_number(arguments)
    untracked = [
        RouteDirection(route=str(item["route"]), direction=str(item["direction"]))
        for item in arguments.get("untracked", [])
    ]
    board.set_untracked(stop_number, untracked)

    stop = board.get_stop(stop_number)
    tracked = ", ".join(str(rd) for rd in stop.tracked_route_directions()) or "none"
    return f"Stop {stop_number} now tracks: {tracked}"


def _set_notification(board: Board, arguments: dict) -> str:
    """Enable a recurring notification for a stop."""
    stop_number = _stop_number(arguments)
    lead_minutes = arguments.get("lead_minutes")
    if lead_minutes is None:
        return "Error: 'lead_minutes' parameter is required"

    request = board.set_notification(stop_number, int(lead_minutes))
    if request.fire_time is None:
        return (
            f"Notification set for stop {stop_number}, {request.lead_minutes} min ahead. "
            "No tracked departure is far enough away yet."
        )
    fire_str = request.fire_time.astimezone().strftime("%H:%M")
    return f"Notification set for stop {stop_number}: {request.content} (fires at {fire_str})"


def _clear_notification(board: Board, arguments: dict) -> str:
    """Disable notifications for a stop."""
    stop_number = _stop_number(arguments)
    board.clear_notification(stop_number)
    return f"Notifications for stop {stop_number} turned off."


def _get_notification_status(board: Board, arguments: dict) -> str:
    """Show the active notifications for a stop."""
    stop = board.get_stop(_stop_number(arguments))
    requests = board.scheduler.requests_for(stop)
    if not requests:
        return f"No notification set for stop {stop.stop_number}."

    lines = [f"Notifications for {format_stop_header(stop)}:"]
    for request in requests:
        if request.fire_time is None:
            lines.append(f"  {request.lead_minutes} min ahead: waiting for a departure")
        else:
            fire_str = request.fire_time.astimezone().strftime("%H:%M")
            lines.append(f"  {request.lead_minutes} min ahead: {request.content} (fires at {fire_str})")
    return "\n".join(lines)


def _bookmark_stop(board: Board, store: BookmarkStore, arguments: dict) -> str:
    """Save a stop to the bookmarks."""
    stop_number = _stop_number(arguments)
    stop_name = arguments.get("stop_name")
    if not stop_name and board.has_stop(stop_number):
        stop_name = board.get_stop(stop_number).stop_name
    if not stop_name:
        return "Error: 'stop_name' is required for stops that are not tracked"

    store.add([StopData(stop_id=stop_number, stop_name=stop_name)])
    return f"Bookmarked #{stop_number} {stop_name}."


def _list_bookmarks(store: BookmarkStore, arguments: dict) -> str:
    """List bookmarked stops."""
    saved = store.load()
    if not saved:
        return "No bookmarked stops."

    lines = [f"{len(saved)} bookmarked stop(s):\n"]
    for stop in saved:
        lines.append(f"• #{stop.stop_id} {stop.stop_name}")
    return "\n".join(lines)


def _remove_bookmark(store: BookmarkStore, arguments: dict) -> str:
    """Remove a bookmarked stop."""
    stop_number = _stop_number(arguments)
    store.remove(stop_number)
    return f"Removed bookmark for stop {stop_number}."


async def main():
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    global board

    logging.basicConfig(level=settings.log_level)

    async with NexTripClient() as client:
        board = Board(client)
        refresher = asyncio.create_task(board.run_periodic())
        try:
            async with stdio_server() as (read_stream, write_stream):
                init_options = app.create_initialization_options()
                await app.run(read_stream, write_stream, init_options)
        finally:
            refresher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresher


def cli():
    """Entry point for console script."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
