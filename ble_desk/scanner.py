"""
BLE Device Scanner

Scans for nearby Bluetooth Low Energy devices and picks out standing desks.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass

from ble_desk.exceptions import (
    DeskNotFoundError,
    DeskScanError,
    DeskTransportError,
    NoDesksFoundError,
)
from ble_desk.protocol import UUID_CONTROL_SERVICE
from ble_desk.transport import Advertisement, BLETransport, BleakTransport

_LOGGER = logging.getLogger(__name__)

DEFAULT_SCAN_TIMEOUT = 10.0


@dataclass(frozen=True)
class DeviceHandle:
    """Information about a discovered BLE device."""

    address: str
    name: str | None = None
    rssi: int | None = None
    manufacturer_id: int | None = None
    service_uuids: tuple[str, ...] = ()

    @property
    def is_desk(self) -> bool:
        """Check if this device appears to be a Linak desk."""
        if UUID_CONTROL_SERVICE in self.service_uuids:
            return True
        return bool(self.name and "desk" in self.name.lower())

    @classmethod
    def from_advertisement(cls, adv: Advertisement) -> "DeviceHandle":
        return cls(
            address=adv.address.upper(),
            name=adv.name,
            rssi=adv.rssi,
            manufacturer_id=adv.manufacturer_id,
            service_uuids=tuple(uuid.lower() for uuid in adv.service_uuids),
        )

    def merge(self, newer: "DeviceHandle") -> "DeviceHandle":
        """Combine two advertisements from the same device."""
        # Names often only arrive in the scan response
        uuids = self.service_uuids + tuple(
            uuid for uuid in newer.service_uuids if uuid not in self.service_uuids
        )
        return DeviceHandle(
            address=self.address,
            name=newer.name or self.name,
            rssi=newer.rssi if newer.rssi is not None else self.rssi,
            manufacturer_id=newer.manufacturer_id or self.manufacturer_id,
            service_uuids=uuids,
        )


def _by_signal(devices) -> list[DeviceHandle]:
    return sorted(devices, key=lambda d: d.rssi if d.rssi is not None else -1000, reverse=True)


async def _collect(
    transport: BLETransport | None,
    timeout: float,
    accept: Callable[[DeviceHandle], bool],
    stop_on_first: bool = False,
) -> dict[str, DeviceHandle]:
    """Scan for ``timeout`` seconds, returning accepted devices by address."""
    transport = transport or BleakTransport()
    seen: dict[str, DeviceHandle] = {}
    found: dict[str, DeviceHandle] = {}

    try:
        async with transport.scan() as advertisements, aclosing(advertisements) as stream:
            try:
                async with asyncio.timeout(timeout):
                    async for adv in stream:
                        handle = DeviceHandle.from_advertisement(adv)
                        if handle.address in seen:
                            handle = seen[handle.address].merge(handle)
                        seen[handle.address] = handle

                        if not accept(handle):
                            continue
                        if handle.address not in found:
                            _LOGGER.debug("Found %s (%s)", handle.name, handle.address)
                        found[handle.address] = handle
                        if stop_on_first:
                            break
            except TimeoutError:
                pass
    except DeskTransportError as e:
        raise DeskScanError(f"BLE scan failed: {e}") from e

    _LOGGER.debug("Scan saw %d device(s), accepted %d", len(seen), len(found))
    return found


async def scan_devices(
    timeout: float = DEFAULT_SCAN_TIMEOUT,
    filter_desks: bool = False,
    *,
    transport: BLETransport | None = None,
) -> list[DeviceHandle]:
    """
    Scan for BLE devices.

    Args:
        timeout: Scan duration in seconds
        filter_desks: If True, only return devices that appear to be desks

    Returns:
        List of discovered devices, sorted by signal strength (strongest first)
    """
    found = await _collect(
        transport, timeout, lambda d: d.is_desk if filter_desks else True
    )
    return _by_signal(found.values())


async def discover(
    address: str | None = None,
    timeout: float = DEFAULT_SCAN_TIMEOUT,
    *,
    transport: BLETransport | None = None,
) -> list[DeviceHandle]:
    """
    Discover desks, optionally looking for one specific address.

    With an address the scan ends as soon as that desk advertises. Without
    one the scan runs for the whole timeout and every desk seen is returned;
    choosing between several is left to the caller.

    Raises:
        DeskNotFoundError: If the requested desk did not advertise in time
        NoDesksFoundError: If an unfiltered scan found no desks
        DeskScanError: If the BLE scan failed
    """
    if address:
        wanted = address.upper()
        found = await _collect(
            transport,
            timeout,
            lambda d: d.address == wanted and d.is_desk,
            stop_on_first=True,
        )
        if not found:
            raise DeskNotFoundError(address)
    else:
        found = await _collect(transport, timeout, lambda d: d.is_desk)
        if not found:
            raise NoDesksFoundError(f"No desks found within {timeout:g}s. Is it powered on?")

    return _by_signal(found.values())
