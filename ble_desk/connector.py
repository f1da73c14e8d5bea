"""
Connecting to a desk and binding its characteristics.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ble_desk.config import DeskSettings
from ble_desk.exceptions import (
    CharacteristicNotFoundError,
    DeskConnectionError,
    DeskError,
    DeskTransportError,
)
from ble_desk.protocol import UUID_COMMAND, UUID_HEIGHT
from ble_desk.scanner import DeviceHandle, discover
from ble_desk.session import BoundCharacteristics, DeskSession
from ble_desk.transport import BLEConnection, BLETransport, BleakTransport, GattCharacteristic

_LOGGER = logging.getLogger(__name__)

# role -> (uuid, acceptable properties)
CHARACTERISTIC_ROLES = {
    "control-write": (UUID_COMMAND, ("write", "write-without-response")),
    "position-read": (UUID_HEIGHT, ("read",)),
    "position-notify": (UUID_HEIGHT, ("notify", "indicate")),
}


def bind_characteristics(characteristics: list[GattCharacteristic]) -> BoundCharacteristics:
    """
    Pick the control and height characteristics out of a discovered service set.

    Raises:
        CharacteristicNotFoundError: If any role cannot be resolved
    """
    resolved = {}
    for role, (uuid, properties) in CHARACTERISTIC_ROLES.items():
        match = next(
            (c for c in characteristics if c.uuid.lower() == uuid and c.supports(*properties)),
            None,
        )
        if match is None:
            raise CharacteristicNotFoundError(role, uuid)
        resolved[role] = match

    return BoundCharacteristics(
        control_write=resolved["control-write"],
        position_read=resolved["position-read"],
        position_notify=resolved["position-notify"],
    )


async def _abandon(connection: BLEConnection):
    try:
        await connection.disconnect()
    except DeskTransportError as e:
        _LOGGER.warning("Error while dropping half-open connection: %s", e)


async def connect(
    device: DeviceHandle | str,
    *,
    transport: BLETransport | None = None,
    settings: DeskSettings | None = None,
) -> DeskSession:
    """
    Connect to a desk and return a fully bound session.

    Args:
        device: A discovered DeviceHandle or a hardware address

    Raises:
        DeskConnectionError: If the connection cannot be opened or bound
        CharacteristicNotFoundError: If the desk lacks a required characteristic
    """
    settings = settings or DeskSettings()
    transport = transport or BleakTransport()
    address = device.address if isinstance(device, DeviceHandle) else device.upper()

    session: DeskSession | None = None
    lost_before_bind = False

    def _on_disconnect():
        nonlocal lost_before_bind
        if session is not None:
            session._handle_disconnect()
        else:
            lost_before_bind = True

    _LOGGER.info("Connecting to %s", address)
    try:
        async with asyncio.timeout(settings.connect_timeout):
            connection = await transport.connect(
                address,
                timeout=settings.connect_timeout,
                disconnected_callback=_on_disconnect,
            )
    except TimeoutError as e:
        raise DeskConnectionError(f"Connection to {address} timed out") from e
    except DeskTransportError as e:
        raise DeskConnectionError(f"Connection to {address} failed: {e}") from e

    try:
        characteristics = bind_characteristics(await connection.discover_services())
        session = DeskSession(connection, characteristics, settings)
        if lost_before_bind:
            session._handle_disconnect()
        await session._start()
    except DeskTransportError as e:
        await _abandon(connection)
        raise DeskConnectionError(f"Service discovery on {address} failed: {e}") from e
    except (DeskError, asyncio.CancelledError):
        await _abandon(connection)
        raise

    _LOGGER.info("Connected to desk at %s (position %s)", address, session.last_position)
    return session


@asynccontextmanager
async def open_desk(
    address: str | None = None,
    *,
    settings: DeskSettings | None = None,
    transport: BLETransport | None = None,
) -> AsyncIterator[DeskSession]:
    """
    Discover, connect and yield a session; disconnect on exit.

    Without an address (argument or settings) the desk with the strongest
    signal is used when several are in range.
    """
    settings = settings or DeskSettings()
    transport = transport or BleakTransport()
    devices = await discover(
        address or settings.address, settings.scan_timeout, transport=transport
    )
    if len(devices) > 1:
        _LOGGER.warning(
            "Found %d desks, using %s (%s) with the strongest signal",
            len(devices),
            devices[0].name,
            devices[0].address,
        )

    session = await connect(devices[0], transport=transport, settings=settings)
    try:
        yield session
    finally:
        await session.disconnect()
