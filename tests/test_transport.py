"""Test the bleak adapter with a mocked bleak."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak.exc import BleakError

from ble_desk.exceptions import DeskTransportError
from ble_desk.protocol import UUID_COMMAND, UUID_HEIGHT
from ble_desk.transport import BleakConnection, BleakTransport, GattCharacteristic

COMMAND = GattCharacteristic(UUID_COMMAND, frozenset({"write", "write-without-response"}))
HEIGHT = GattCharacteristic(UUID_HEIGHT, frozenset({"read", "notify"}))


@pytest.fixture
def client():
    client = MagicMock()
    client.address = "AA:BB:CC:DD:EE:FF"
    client.is_connected = True
    client.read_gatt_char = AsyncMock(return_value=bytearray(b"\x20\x03\x00\x00"))
    client.write_gatt_char = AsyncMock()
    client.start_notify = AsyncMock()
    client.stop_notify = AsyncMock()
    client.disconnect = AsyncMock()
    return client


def _scanner(*adverts):
    scanner = MagicMock()
    scanner.start = AsyncMock()
    scanner.stop = AsyncMock()

    async def advertisement_data():
        for advert in adverts:
            yield advert

    scanner.advertisement_data = advertisement_data
    return scanner


async def test_read_returns_bytes(client):
    connection = BleakConnection(client)

    assert await connection.read(HEIGHT) == b"\x20\x03\x00\x00"
    client.read_gatt_char.assert_awaited_once_with(UUID_HEIGHT)


async def test_write_uses_response_when_supported(client):
    connection = BleakConnection(client)

    await connection.write(COMMAND, b"\xff\x00")

    client.write_gatt_char.assert_awaited_once_with(UUID_COMMAND, b"\xff\x00", response=True)


async def test_write_without_response(client):
    connection = BleakConnection(client)
    characteristic = GattCharacteristic(UUID_COMMAND, frozenset({"write-without-response"}))

    await connection.write(characteristic, b"\xff\x00")

    client.write_gatt_char.assert_awaited_once_with(UUID_COMMAND, b"\xff\x00", response=False)


async def test_bleak_errors_are_wrapped(client):
    client.read_gatt_char.side_effect = BleakError("not connected")
    client.write_gatt_char.side_effect = BleakError("not connected")
    connection = BleakConnection(client)

    with pytest.raises(DeskTransportError, match="not connected"):
        await connection.read(HEIGHT)
    with pytest.raises(DeskTransportError):
        await connection.write(COMMAND, b"\xff\x00")


async def test_subscribe_passes_bytes(client):
    connection = BleakConnection(client)
    received = []

    await connection.subscribe(HEIGHT, received.append)
    handler = client.start_notify.await_args.args[1]
    handler(None, bytearray(b"\x00\x00\x00\x00"))

    assert received == [b"\x00\x00\x00\x00"]
    assert isinstance(received[0], bytes)


async def test_discover_services(client):
    client.services = [
        SimpleNamespace(
            characteristics=[
                SimpleNamespace(uuid=UUID_COMMAND.upper(), properties=["write"]),
                SimpleNamespace(uuid=UUID_HEIGHT, properties=["read", "notify"]),
            ]
        )
    ]
    connection = BleakConnection(client)

    characteristics = await connection.discover_services()

    assert characteristics == [
        GattCharacteristic(UUID_COMMAND, frozenset({"write"})),
        GattCharacteristic(UUID_HEIGHT, frozenset({"read", "notify"})),
    ]


async def test_scan_yields_advertisements_and_stops():
    device = SimpleNamespace(address="AA:BB:CC:DD:EE:FF", name=None)
    adv_data = SimpleNamespace(
        local_name="Desk 1234",
        rssi=-60,
        service_uuids=["99FA0001-338A-1024-8A49-009C0215F78A"],
        manufacturer_data={0x0059: b"\x01"},
    )
    scanner = _scanner((device, adv_data))

    with patch("ble_desk.transport.BleakScanner", return_value=scanner):
        async with BleakTransport().scan() as advertisements:
            adverts = [adv async for adv in advertisements]

    assert len(adverts) == 1
    assert adverts[0].name == "Desk 1234"
    assert adverts[0].manufacturer_id == 0x0059
    assert adverts[0].service_uuids == ("99fa0001-338a-1024-8a49-009c0215f78a",)
    scanner.stop.assert_awaited_once()


async def test_scan_stops_on_error():
    scanner = _scanner()

    with patch("ble_desk.transport.BleakScanner", return_value=scanner):
        with pytest.raises(RuntimeError):
            async with BleakTransport().scan():
                raise RuntimeError("consumer failed")

    scanner.stop.assert_awaited_once()


async def test_scan_start_failure():
    scanner = _scanner()
    scanner.start.side_effect = BleakError("Bluetooth is off")

    with patch("ble_desk.transport.BleakScanner", return_value=scanner):
        with pytest.raises(DeskTransportError, match="Bluetooth is off"):
            async with BleakTransport().scan():
                pass

    scanner.stop.assert_not_awaited()


async def test_connect_wires_disconnect_callback(client):
    client.connect = AsyncMock()
    lost = MagicMock()

    with patch("ble_desk.transport.BleakClient", return_value=client) as client_cls:
        connection = await BleakTransport().connect(
            "AA:BB:CC:DD:EE:FF", timeout=5.0, disconnected_callback=lost
        )
        client_cls.call_args.kwargs["disconnected_callback"](client)

    assert connection.address == "AA:BB:CC:DD:EE:FF"
    assert client_cls.call_args.kwargs["timeout"] == 5.0
    lost.assert_called_once_with()


async def test_connect_failure(client):
    client.connect = AsyncMock(side_effect=BleakError("Device not found"))

    with patch("ble_desk.transport.BleakClient", return_value=client):
        with pytest.raises(DeskTransportError, match="Device not found"):
            await BleakTransport().connect(
                "AA:BB:CC:DD:EE:FF", timeout=5.0, disconnected_callback=lambda: None
            )


async def test_scan_error_mid_stream_is_wrapped():
    scanner = MagicMock()
    scanner.start = AsyncMock()
    scanner.stop = AsyncMock()

    async def advertisement_data():
        raise BleakError("Adapter reset")
        yield

    scanner.advertisement_data = advertisement_data

    with patch("ble_desk.transport.BleakScanner", return_value=scanner):
        with pytest.raises(DeskTransportError, match="Adapter reset"):
            async with BleakTransport().scan() as advertisements:
                async for _ in advertisements:
                    pass

    scanner.stop.assert_awaited_once()
