"""
BLE Desk - Bluetooth Low Energy standing desk control library.

This package discovers IKEA Idåsen / Linak standing desks, binds a session
to one of them and drives it to a target height with a closed-loop
controller.
"""

from ble_desk.config import DeskSettings
from ble_desk.connector import bind_characteristics, connect, open_desk
from ble_desk.exceptions import (
    CharacteristicNotFoundError,
    DeskBusyError,
    DeskCommunicationError,
    DeskConnectionError,
    DeskDisconnectedError,
    DeskDiscoveryError,
    DeskError,
    DeskMoveError,
    DeskNotFoundError,
    DeskProtocolError,
    DeskReadError,
    DeskScanError,
    DeskStalledError,
    DeskTransportError,
    DeskWriteError,
    HeightOutOfRangeError,
    MalformedPayloadError,
    MoveCancelledError,
    NoDesksFoundError,
)
from ble_desk.motion import MotionController, MoveResult, MoveState
from ble_desk.protocol import MAX_POSITION, MIN_POSITION, Direction
from ble_desk.scanner import DeviceHandle, discover, scan_devices
from ble_desk.session import BoundCharacteristics, DeskSession

__all__ = [
    # Discovery and connection
    "discover",
    "scan_devices",
    "connect",
    "open_desk",
    "bind_characteristics",
    "DeviceHandle",
    "BoundCharacteristics",
    # Session
    "DeskSession",
    "DeskSettings",
    "MotionController",
    "MoveResult",
    "MoveState",
    "Direction",
    "MIN_POSITION",
    "MAX_POSITION",
    # Errors
    "DeskError",
    "DeskDiscoveryError",
    "DeskScanError",
    "NoDesksFoundError",
    "DeskNotFoundError",
    "DeskConnectionError",
    "CharacteristicNotFoundError",
    "DeskDisconnectedError",
    "DeskCommunicationError",
    "DeskReadError",
    "DeskWriteError",
    "DeskProtocolError",
    "MalformedPayloadError",
    "DeskMoveError",
    "HeightOutOfRangeError",
    "DeskStalledError",
    "MoveCancelledError",
    "DeskBusyError",
    "DeskTransportError",
]
