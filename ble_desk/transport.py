"""
BLE transport boundary.

The session, scanner and connector only talk to the capability protocols
defined here. BleakTransport implements them on top of bleak; tests plug in
a simulated desk instead.
"""

import asyncio
import logging
import warnings
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ble_desk.exceptions import DeskTransportError

# Suppress bleak's internal asyncio warnings (race condition in CoreBluetooth backend)
warnings.filterwarnings("ignore", message=".*invalid state.*")
logging.getLogger("bleak").setLevel(logging.ERROR)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Advertisement:
    """A single advertisement seen while scanning."""

    address: str
    name: str | None
    rssi: int | None
    service_uuids: tuple[str, ...] = ()
    manufacturer_id: int | None = None


@dataclass(frozen=True)
class GattCharacteristic:
    """A characteristic discovered on a connected peripheral."""

    uuid: str
    properties: frozenset[str] = field(default_factory=frozenset)

    def supports(self, *properties: str) -> bool:
        """Return True if any of ``properties`` is declared."""
        return any(prop in self.properties for prop in properties)


class BLEConnection(Protocol):
    """An open link to one peripheral."""

    @property
    def address(self) -> str: ...

    @property
    def is_connected(self) -> bool: ...

    async def discover_services(self) -> list[GattCharacteristic]: ...

    async def read(self, characteristic: GattCharacteristic) -> bytes: ...

    async def write(self, characteristic: GattCharacteristic, data: bytes) -> None: ...

    async def subscribe(
        self, characteristic: GattCharacteristic, callback: Callable[[bytes], None]
    ) -> None: ...

    async def unsubscribe(self, characteristic: GattCharacteristic) -> None: ...

    async def disconnect(self) -> None: ...


class BLETransport(Protocol):
    """Host radio capabilities: scanning and opening connections."""

    def scan(
        self, service_uuids: list[str] | None = None
    ) -> AbstractAsyncContextManager[AsyncGenerator[Advertisement, None]]: ...

    async def connect(
        self,
        address: str,
        *,
        timeout: float,
        disconnected_callback: Callable[[], None],
    ) -> BLEConnection: ...


class BleakConnection:
    """BLEConnection backed by a connected BleakClient."""

    def __init__(self, client: BleakClient):
        self._client = client

    @property
    def address(self) -> str:
        return self._client.address

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    async def discover_services(self) -> list[GattCharacteristic]:
        # bleak resolves services while connecting
        characteristics = []
        for service in self._client.services:
            for char in service.characteristics:
                characteristics.append(
                    GattCharacteristic(char.uuid.lower(), frozenset(char.properties))
                )
        return characteristics

    async def read(self, characteristic: GattCharacteristic) -> bytes:
        try:
            return bytes(await self._client.read_gatt_char(characteristic.uuid))
        except BleakError as e:
            raise DeskTransportError(f"Read of {characteristic.uuid} failed: {e}") from e

    async def write(self, characteristic: GattCharacteristic, data: bytes) -> None:
        response = characteristic.supports("write")
        try:
            await self._client.write_gatt_char(characteristic.uuid, data, response=response)
        except BleakError as e:
            raise DeskTransportError(f"Write to {characteristic.uuid} failed: {e}") from e

    async def subscribe(
        self, characteristic: GattCharacteristic, callback: Callable[[bytes], None]
    ) -> None:
        def _handler(sender, data: bytearray):
            callback(bytes(data))

        try:
            await self._client.start_notify(characteristic.uuid, _handler)
        except BleakError as e:
            raise DeskTransportError(f"Subscribe to {characteristic.uuid} failed: {e}") from e

    async def unsubscribe(self, characteristic: GattCharacteristic) -> None:
        try:
            await self._client.stop_notify(characteristic.uuid)
        except BleakError as e:
            raise DeskTransportError(f"Unsubscribe from {characteristic.uuid} failed: {e}") from e

    async def disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except BleakError as e:
            raise DeskTransportError(f"Disconnect failed: {e}") from e


class BleakTransport:
    """BLETransport using the host's default bleak backend."""

    @asynccontextmanager
    async def scan(self, service_uuids: list[str] | None = None):
        scanner = BleakScanner(service_uuids=service_uuids)
        try:
            await scanner.start()
        except BleakError as e:
            raise DeskTransportError(f"BLE scan failed: {e}") from e
        _LOGGER.debug("Scanning started")
        try:
            yield _advertisements(scanner)
        finally:
            try:
                await scanner.stop()
            except BleakError as e:
                _LOGGER.warning("Failed to stop scanner: %s", e)
            _LOGGER.debug("Scanning stopped")

    async def connect(
        self,
        address: str,
        *,
        timeout: float,
        disconnected_callback: Callable[[], None],
    ) -> BleakConnection:
        client = BleakClient(
            address,
            timeout=timeout,
            disconnected_callback=lambda _client: disconnected_callback(),
        )
        try:
            await client.connect()
        except asyncio.TimeoutError as e:
            raise DeskTransportError("Connection timed out") from e
        except BleakError as e:
            raise DeskTransportError(f"BLE error: {e}") from e
        return BleakConnection(client)


async def _advertisements(scanner: BleakScanner) -> AsyncGenerator[Advertisement, None]:
    try:
        async for device, adv_data in scanner.advertisement_data():
            manufacturer_id = None
            if adv_data.manufacturer_data:
                manufacturer_id = list(adv_data.manufacturer_data.keys())[0]

            yield Advertisement(
                address=device.address,
                name=adv_data.local_name or device.name,
                rssi=adv_data.rssi,
                service_uuids=tuple(uuid.lower() for uuid in adv_data.service_uuids),
                manufacturer_id=manufacturer_id,
            )
    except BleakError as e:
        raise DeskTransportError(f"BLE scan interrupted: {e}") from e
