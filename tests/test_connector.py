"""Test connecting to a desk and binding its characteristics."""

import pytest

from ble_desk.config import DeskSettings
from ble_desk.connector import bind_characteristics, connect, open_desk
from ble_desk.exceptions import (
    CharacteristicNotFoundError,
    DeskConnectionError,
    DeskDisconnectedError,
    DeskTransportError,
)
from ble_desk.protocol import CMD_WAKEUP, UUID_COMMAND, UUID_HEIGHT
from ble_desk.scanner import DeviceHandle
from ble_desk.transport import GattCharacteristic

from .simulator import COMMAND_CHAR, DESK_ADDRESS, HEIGHT_CHAR, OTHER_CHAR


def test_bind_characteristics():
    bound = bind_characteristics([OTHER_CHAR, COMMAND_CHAR, HEIGHT_CHAR])

    assert bound.control_write is COMMAND_CHAR
    assert bound.position_read is HEIGHT_CHAR
    assert bound.position_notify is HEIGHT_CHAR


def test_bind_characteristics_separate_read_and_notify():
    read_only = GattCharacteristic(UUID_HEIGHT, frozenset({"read"}))
    notify_only = GattCharacteristic(UUID_HEIGHT, frozenset({"notify"}))

    bound = bind_characteristics([COMMAND_CHAR, read_only, notify_only])

    assert bound.position_read is read_only
    assert bound.position_notify is notify_only


@pytest.mark.parametrize(
    "characteristics, role",
    [
        ([HEIGHT_CHAR], "control-write"),
        ([GattCharacteristic(UUID_COMMAND, frozenset({"read"})), HEIGHT_CHAR], "control-write"),
        ([COMMAND_CHAR], "position-read"),
        ([COMMAND_CHAR, GattCharacteristic(UUID_HEIGHT, frozenset({"read"}))], "position-notify"),
    ],
)
def test_bind_characteristics_missing_role(characteristics, role):
    with pytest.raises(CharacteristicNotFoundError) as exc_info:
        bind_characteristics(characteristics)
    assert exc_info.value.role == role


async def test_connect_binds_session(desk, transport, settings):
    """Test a connected session is subscribed, awake and knows its height."""
    handle = DeviceHandle(address=DESK_ADDRESS, name="Desk 4711")

    session = await connect(handle, transport=transport, settings=settings)

    assert session.is_connected is True
    assert session.address == DESK_ADDRESS
    assert session.last_position == 7000
    assert desk.notify_callback is not None
    assert desk.commands == [CMD_WAKEUP]
    assert transport.connect_calls == [DESK_ADDRESS]
    await session.disconnect()


async def test_connect_accepts_lowercase_address(transport, settings):
    session = await connect(DESK_ADDRESS.lower(), transport=transport, settings=settings)

    assert transport.connect_calls == [DESK_ADDRESS]
    await session.disconnect()


async def test_connect_failure(transport, settings):
    transport.connect_error = DeskTransportError("BLE error: device unreachable")

    with pytest.raises(DeskConnectionError, match="device unreachable"):
        await connect(DESK_ADDRESS, transport=transport, settings=settings)


async def test_connect_timeout(transport, settings):
    transport.connect_delay = 5.0
    settings = DeskSettings(connect_timeout=0.05)

    with pytest.raises(DeskConnectionError, match="timed out"):
        await connect(DESK_ADDRESS, transport=transport, settings=settings)


async def test_connect_missing_characteristic_disconnects(desk, transport, settings):
    """Test no half-bound session is returned when the desk lacks a characteristic."""
    desk.characteristics = [HEIGHT_CHAR]

    with pytest.raises(CharacteristicNotFoundError):
        await connect(DESK_ADDRESS, transport=transport, settings=settings)

    assert desk.disconnect_calls == 1
    assert desk.is_connected is False
    assert desk.writes == []


async def test_connect_subscribe_failure_disconnects(desk, transport, settings):
    desk.subscribe_error = DeskTransportError("Notify not permitted")

    with pytest.raises(DeskConnectionError, match="Notify not permitted"):
        await connect(DESK_ADDRESS, transport=transport, settings=settings)

    assert desk.disconnect_calls == 1


async def test_link_loss_invalidates_session(desk, session):
    desk.drop()

    assert session.is_connected is False
    with pytest.raises(DeskDisconnectedError):
        await session.position()


async def test_open_desk_discovers_and_disconnects(desk, transport, settings):
    async with open_desk(settings=settings, transport=transport) as session:
        assert session.is_connected is True
        assert await session.position() == 7000

    assert session.is_connected is False
    assert desk.disconnect_calls == 1
    assert transport.scans_stopped == 1
