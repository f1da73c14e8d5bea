"""
Exceptions raised by the desk library.

Every failure surfaces as a subclass of DeskError so callers can catch the
whole family or a single kind.
"""


class DeskError(Exception):
    """Base exception for desk controller errors."""

    pass


# === DISCOVERY ===


class DeskDiscoveryError(DeskError):
    """Raised when BLE discovery does not produce a usable desk."""

    pass


class DeskScanError(DeskDiscoveryError):
    """Raised when the BLE scan itself fails."""

    pass


class NoDesksFoundError(DeskDiscoveryError):
    """Raised when an unfiltered scan finds no desks at all."""

    pass


class DeskNotFoundError(DeskDiscoveryError):
    """Raised when a desk with the requested address cannot be found via BLE scan."""

    def __init__(self, address: str, message: str | None = None):
        self.address = address
        super().__init__(message or f"Desk {address} not found. Is it powered on?")


# === CONNECTION ===


class DeskConnectionError(DeskError):
    """Raised when connection to desk fails."""

    pass


class CharacteristicNotFoundError(DeskConnectionError):
    """Raised when a required GATT characteristic is missing on the desk."""

    def __init__(self, role: str, uuid: str):
        self.role = role
        self.uuid = uuid
        super().__init__(f"Characteristic for {role} ({uuid}) not found")


class DeskDisconnectedError(DeskConnectionError):
    """Raised when the link to the desk is gone."""

    pass


# === COMMUNICATION ===


class DeskCommunicationError(DeskError):
    """Raised when BLE communication fails during operation."""

    pass


class DeskReadError(DeskCommunicationError):
    """Raised when reading a characteristic fails or times out."""

    pass


class DeskWriteError(DeskCommunicationError):
    """Raised when writing a command fails or times out."""

    pass


class DeskProtocolError(DeskError):
    """Raised when the desk sends data the protocol does not allow."""

    pass


class MalformedPayloadError(DeskProtocolError):
    """Raised when a position payload has an unexpected length."""

    def __init__(self, payload: bytes, expected: int):
        self.payload = bytes(payload)
        self.expected = expected
        super().__init__(
            f"Expected {expected} byte payload, got {len(payload)}: {self.payload.hex()}"
        )


# === MOVEMENT ===


class DeskMoveError(DeskError):
    """Base exception for failed moves."""

    pass


class HeightOutOfRangeError(DeskMoveError, ValueError):
    """Raised when a target height is outside the desk's travel."""

    def __init__(self, target, minimum: int, maximum: int):
        self.target = target
        super().__init__(f"Target {target} is outside the valid range {minimum}-{maximum}")


class DeskStalledError(DeskMoveError):
    """Raised when the desk stops reporting progress during a move."""

    def __init__(self, position: int, target: int, silence: float):
        self.position = position
        self.target = target
        super().__init__(
            f"No movement for {silence:.1f}s at {position} (target {target}); desk stopped"
        )


class MoveCancelledError(DeskMoveError):
    """Raised when a move is aborted by the caller."""

    def __init__(self, position: int, target: int):
        self.position = position
        self.target = target
        super().__init__(f"Move to {target} aborted at {position}")


class DeskBusyError(DeskError):
    """Raised when a motion command is issued while another move owns the desk."""

    pass


class DeskTransportError(DeskError):
    """Raised by transport adapters when the underlying BLE stack fails."""

    pass
