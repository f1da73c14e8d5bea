"""
Linak / IKEA Idåsen desk protocol.

Protocol reverse-engineered from:
- https://github.com/anson-vandoren/linak-desk-spec
- https://github.com/j5lien/esphome-idasen-desk-controller

Positions are integers in 0.1 mm. The desk reports its height as an offset
above the 62.0 cm base, so the decoded position of a desk at the bottom of its
travel is 6200.
"""

import enum
import struct

from ble_desk.exceptions import HeightOutOfRangeError, MalformedPayloadError

# === LINAK BLE UUIDS ===
UUID_CONTROL_SERVICE = "99fa0001-338a-1024-8a49-009c0215f78a"
UUID_COMMAND = "99fa0002-338a-1024-8a49-009c0215f78a"
UUID_HEIGHT = "99fa0021-338a-1024-8a49-009c0215f78a"

# === COMMANDS ===
CMD_UP = 0x0047
CMD_DOWN = 0x0046
CMD_STOP = 0x00FF
CMD_WAKEUP = 0x00FE

# === CONSTANTS ===
BASE_POSITION = 6200
MIN_POSITION = 6200
MAX_POSITION = 12700

# Height (uint16) followed by speed (int16)
HEIGHT_FORMAT = "<Hh"
HEIGHT_PAYLOAD_LENGTH = struct.calcsize(HEIGHT_FORMAT)


class Direction(enum.Enum):
    """Instantaneous motor command state."""

    UP = "up"
    DOWN = "down"
    STOPPED = "stopped"

    @property
    def command(self) -> int:
        return _DIRECTION_COMMANDS[self]


_DIRECTION_COMMANDS = {
    Direction.UP: CMD_UP,
    Direction.DOWN: CMD_DOWN,
    Direction.STOPPED: CMD_STOP,
}


def encode_command(code: int) -> bytes:
    """Encode a command code as the 2-byte little-endian control payload."""
    return struct.pack("<H", code)


def decode_position(data: bytes) -> int:
    """Decode a height payload into a position in 0.1 mm."""
    position, _ = decode_height_data(data)
    return position


def decode_height_data(data: bytes) -> tuple[int, int]:
    """
    Parse height characteristic data.

    Returns:
        Tuple of (position, speed)

    Raises:
        MalformedPayloadError: If the payload is not exactly 4 bytes
    """
    if len(data) != HEIGHT_PAYLOAD_LENGTH:
        raise MalformedPayloadError(data, HEIGHT_PAYLOAD_LENGTH)
    raw_height, speed = struct.unpack(HEIGHT_FORMAT, bytes(data))
    return raw_height + BASE_POSITION, speed


def encode_height_data(position: int, speed: int = 0) -> bytes:
    """Build the payload a desk at ``position`` would send."""
    return struct.pack(HEIGHT_FORMAT, position - BASE_POSITION, speed)


def validate_position(target) -> int:
    """Check that ``target`` is a reachable position and return it."""
    if isinstance(target, bool) or not isinstance(target, int):
        raise HeightOutOfRangeError(target, MIN_POSITION, MAX_POSITION)
    if not MIN_POSITION <= target <= MAX_POSITION:
        raise HeightOutOfRangeError(target, MIN_POSITION, MAX_POSITION)
    return target


def position_to_mm(position: int) -> float:
    return position / 10


def mm_to_position(mm: float) -> int:
    return int(round(mm * 10))
