"""
Shared pytest configuration and fixtures.
"""

import pytest

from ble_desk.config import DeskSettings
from ble_desk.connector import connect

from .simulator import DESK_ADDRESS, SimulatedDesk, SimulatedTransport, desk_advertisement


@pytest.fixture
def settings():
    return DeskSettings(
        scan_timeout=0.05,
        connect_timeout=1.0,
        operation_timeout=0.2,
        stall_timeout=0.2,
        stop_grace=0.2,
    )


@pytest.fixture
def desk():
    simulated = SimulatedDesk()
    yield simulated
    simulated.halt()


@pytest.fixture
def transport(desk):
    return SimulatedTransport([desk_advertisement()], desk)


@pytest.fixture
async def session(desk, transport, settings):
    bound = await connect(DESK_ADDRESS, transport=transport, settings=settings)
    desk.writes.clear()
    yield bound
    await bound.disconnect()
