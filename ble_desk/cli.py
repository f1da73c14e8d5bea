"""
CLI interface for desk control.

Provides command-line tools for scanning BLE devices and controlling the desk.
"""

import asyncio
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ble_desk.config import DeskSettings
from ble_desk.connector import open_desk
from ble_desk.exceptions import (
    DeskCommunicationError,
    DeskConnectionError,
    DeskDiscoveryError,
    DeskError,
    DeskStalledError,
)
from ble_desk.motion import MoveResult
from ble_desk.protocol import MAX_POSITION, MIN_POSITION, mm_to_position
from ble_desk.scanner import DeviceHandle, scan_devices
from ble_desk.transport import BLETransport

console = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_STALLED = 2


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def format_height(position: int) -> str:
    mm = position / 10
    return f'{mm:.1f}mm ({mm / 25.4:.1f}")'


def print_devices(devices: list[DeviceHandle]) -> None:
    """Print a formatted table of discovered devices."""
    if not devices:
        console.print("No devices found.")
        return

    table = Table()
    table.add_column("Name", max_width=24, no_wrap=True)
    table.add_column("Address")
    table.add_column("RSSI", justify="right")
    table.add_column("Notes")

    for device in devices:
        notes = []
        if device.is_desk:
            notes.append("[green]DESK[/]")
        if device.manufacturer_id:
            notes.append(f"MFG:0x{device.manufacturer_id:04X}")
        rssi = f"{device.rssi} dBm" if device.rssi is not None else "-"
        table.add_row(device.name or "(unknown)", device.address, rssi, ", ".join(notes))

    console.print(table)


def report_move(result: MoveResult) -> None:
    if result.within_tolerance:
        console.print(f"✅ Done: {format_height(result.position)} (error: {result.error / 10:.1f}mm)")
    else:
        console.print(
            f"⚠️  Stopped at {format_height(result.position)}, "
            f"{result.overshoot / 10:.1f}mm past the target"
        )


async def run_scan(settings: DeskSettings, transport: BLETransport | None = None) -> int:
    """Scan for BLE devices."""
    console.print(f"🔍 Scanning for BLE devices ({settings.scan_timeout:.0f} seconds)...\n")
    try:
        devices = await scan_devices(timeout=settings.scan_timeout, transport=transport)
    except DeskDiscoveryError as e:
        console.print(f"❌ {e}")
        return EXIT_ERROR
    print_devices(devices)

    # Highlight any desks found
    desks = [d for d in devices if d.is_desk]
    if desks:
        console.print(f"\n✅ Found {len(desks)} desk(s):")
        for desk in desks:
            console.print(f"   • {desk.name} ({desk.address})")
    else:
        console.print("\n⚠️  No desks found. Make sure your desk is powered on.")
    return EXIT_OK


def _clamp(position: int) -> int:
    return max(MIN_POSITION, min(MAX_POSITION, position))


async def _dispatch(desk, args: list[str]) -> int:
    command = args[0] if args else "height"

    if command == "height":
        position = await desk.position()
        console.print(f"📏 Height: {format_height(position)}")

    elif command in ("up", "down"):
        inches = float(args[1]) if len(args) > 1 else 1.0
        delta = mm_to_position(inches * 25.4)
        current = await desk.position()
        target = _clamp(current + delta if command == "up" else current - delta)
        arrow = "⬆️" if command == "up" else "⬇️"
        console.print(f"{arrow}  Moving {inches:.1f}\" {command}...")
        report_move(await desk.move_to(target))

    elif command == "goto":
        if len(args) < 2:
            console.print("Usage: goto <height_mm>")
            return EXIT_ERROR
        target = mm_to_position(float(args[1]))
        console.print(f"📏 {format_height(desk.last_position or 0)} → {format_height(target)}")
        report_move(await desk.move_to(target))

    elif command == "stop":
        await desk.stop()
        console.print("🛑 Stopped")

    else:
        console.print(f"Unknown command: {command}")
        print_control_help()
        return EXIT_ERROR

    return EXIT_OK


async def run_control(
    args: list[str],
    settings: DeskSettings,
    transport: BLETransport | None = None,
) -> int:
    """Run a desk command."""
    console.print("🔍 Searching for desk...")
    try:
        async with open_desk(settings=settings, transport=transport) as desk:
            console.print(f"🔗 Connected to {desk.address}")
            return await _dispatch(desk, args)
    except DeskDiscoveryError as e:
        console.print(f"❌ {e}")
    except DeskConnectionError as e:
        console.print(f"❌ Connection failed: {e}")
    except DeskCommunicationError as e:
        console.print(f"❌ Communication error: {e}")
    except ValueError as e:
        console.print(f"❌ Invalid argument: {e}")
    except DeskStalledError as e:
        console.print(f"⚠️  {e}")
        return EXIT_STALLED
    except DeskError as e:
        console.print(f"❌ {e}")
    return EXIT_ERROR


def print_control_help():
    """Print help for desk control commands."""
    console.print(
        """
Usage: desk-control [-v] [--address ADDR] [command] [args]

Commands:
  (no command)     Show current height
  height           Show current height
  up [inches]      Move up by inches (default: 1)
  down [inches]    Move down by inches (default: 1)
  goto <mm>        Move to specific height in mm (620-1270)
  stop             Stop the desk

Settings are read from DESK_* environment variables or a .env file.

Examples:
  desk-control                  # Show current height
  desk-control up 3             # Move up 3 inches
  desk-control goto 900         # Move to 900mm
""",
        highlight=False,
    )


def parse_options(argv: list[str]) -> tuple[list[str], dict]:
    """Split ``-v`` and ``--address`` out of argv."""
    args = []
    options = {"verbose": False, "address": None}
    it = iter(argv)
    for arg in it:
        if arg in ("-v", "--verbose"):
            options["verbose"] = True
        elif arg in ("-a", "--address"):
            options["address"] = next(it, None)
        elif arg.startswith("--address="):
            options["address"] = arg.split("=", 1)[1]
        else:
            args.append(arg)
    return args, options


def main_scan():
    """Entry point for desk-scan command."""
    _, options = parse_options(sys.argv[1:])
    setup_logging(options["verbose"])
    settings = DeskSettings.from_env()
    sys.exit(asyncio.run(run_scan(settings)))


def main_control():
    """Entry point for desk-control command."""
    if len(sys.argv) > 1 and sys.argv[1] in ("-h", "--help", "help"):
        print_control_help()
        return
    args, options = parse_options(sys.argv[1:])
    setup_logging(options["verbose"])
    settings = DeskSettings.from_env(address=options["address"])
    try:
        code = asyncio.run(run_control(args, settings))
    except KeyboardInterrupt:
        console.print("\n🛑 Interrupted")
        code = EXIT_ERROR
    sys.exit(code)


if __name__ == "__main__":
    main_control()
