"""
Session with one connected desk.

A DeskSession owns the BLE link and the three bound characteristics. It is
only ever created fully bound, by ``ble_desk.connector.connect``.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from ble_desk.config import DeskSettings
from ble_desk.exceptions import (
    DeskBusyError,
    DeskConnectionError,
    DeskDisconnectedError,
    DeskReadError,
    DeskTransportError,
    DeskWriteError,
    MalformedPayloadError,
)
from ble_desk.motion import MotionController, MoveResult, Signal
from ble_desk.protocol import (
    CMD_DOWN,
    CMD_STOP,
    CMD_UP,
    CMD_WAKEUP,
    Direction,
    decode_position,
    encode_command,
)
from ble_desk.transport import BLEConnection, GattCharacteristic

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundCharacteristics:
    """Characteristics resolved for one connected desk."""

    control_write: GattCharacteristic
    position_read: GattCharacteristic
    position_notify: GattCharacteristic


class DeskSession:
    """Controller for one connected IKEA Idåsen / Linak standing desk."""

    def __init__(
        self,
        connection: BLEConnection,
        characteristics: BoundCharacteristics,
        settings: DeskSettings | None = None,
    ):
        self._connection = connection
        self.characteristics = characteristics
        self.settings = settings or DeskSettings()
        self.last_position: int | None = None
        self._connected = True
        self._disconnecting = False  # Track intentional disconnect
        self._motion_lock = asyncio.Lock()
        self._controller: MotionController | None = None
        self._queues: list[asyncio.Queue] = []
        self._listeners: list[Callable[[int], None]] = []

    def __repr__(self) -> str:
        return f"<DeskSession {self.address} connected={self.is_connected}>"

    @property
    def address(self) -> str:
        return self._connection.address

    @property
    def is_connected(self) -> bool:
        return self._connected and self._connection.is_connected

    @property
    def is_moving(self) -> bool:
        """True while a move_to owns the desk."""
        return self._motion_lock.locked()

    async def __aenter__(self) -> "DeskSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # === LINK ===

    async def _start(self):
        """Subscribe to height notifications, wake the desk and read its height."""
        self._ensure_connected()
        try:
            async with asyncio.timeout(self.settings.operation_timeout):
                await self._connection.subscribe(
                    self.characteristics.position_notify, self._on_notification
                )
        except TimeoutError as e:
            self._raise_if_lost(e)
            raise DeskConnectionError("Timed out subscribing to height notifications") from e
        except DeskTransportError as e:
            self._raise_if_lost(e)
            raise DeskConnectionError(f"Failed to subscribe to height: {e}") from e

        await self.wakeup()
        await self.position()

    def _handle_disconnect(self):
        """Invalidate the session after the link dropped."""
        was_connected = self._connected
        self._connected = False
        if was_connected and not self._disconnecting:
            _LOGGER.warning("Desk %s disconnected unexpectedly", self.address)
        for queue in self._queues:
            queue.put_nowait(Signal.LINK_LOST)

    def _ensure_connected(self):
        if not self.is_connected:
            raise DeskDisconnectedError(f"Desk {self.address} is not connected")

    def _raise_if_lost(self, cause: Exception):
        if not self.is_connected:
            raise DeskDisconnectedError(f"Desk {self.address} disconnected") from cause

    async def disconnect(self):
        """Disconnect from the desk gracefully."""
        if self._disconnecting:
            return
        self._disconnecting = True
        try:
            if self.is_connected:
                try:
                    await self._connection.unsubscribe(self.characteristics.position_notify)
                except DeskTransportError as e:
                    _LOGGER.debug("Error stopping notifications: %s", e)
                try:
                    await self._connection.disconnect()
                except DeskTransportError as e:
                    _LOGGER.warning("Error during disconnect: %s", e)
        finally:
            self._handle_disconnect()
        _LOGGER.info("Disconnected from desk at %s", self.address)

    # === HEIGHT ===

    def _on_notification(self, data: bytes):
        """Handle height notifications pushed by the desk."""
        try:
            position = decode_position(data)
        except MalformedPayloadError as e:
            _LOGGER.warning("Dropping height notification: %s", e)
            return

        self.last_position = position
        for queue in self._queues:
            queue.put_nowait(position)
        for listener in list(self._listeners):
            try:
                listener(position)
            except Exception:
                _LOGGER.exception("Position listener %r failed", listener)

    def add_position_listener(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """
        Call ``callback`` with every notified position.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _open_updates(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def _close_updates(self, queue: asyncio.Queue):
        if queue in self._queues:
            self._queues.remove(queue)

    async def position(self) -> int:
        """
        Read the current desk position in 0.1 mm.

        Raises:
            DeskReadError: If the read fails or times out
            MalformedPayloadError: If the desk returned an unexpected payload
            DeskDisconnectedError: If the link is gone
        """
        self._ensure_connected()
        try:
            async with asyncio.timeout(self.settings.operation_timeout):
                data = await self._connection.read(self.characteristics.position_read)
        except TimeoutError as e:
            self._raise_if_lost(e)
            raise DeskReadError("Timed out reading height") from e
        except DeskTransportError as e:
            self._raise_if_lost(e)
            raise DeskReadError(f"Failed to read height: {e}") from e

        self.last_position = decode_position(data)
        return self.last_position

    # === COMMANDS ===

    async def _write(self, code: int, label: str):
        self._ensure_connected()
        try:
            async with asyncio.timeout(self.settings.operation_timeout):
                await self._connection.write(
                    self.characteristics.control_write, encode_command(code)
                )
        except TimeoutError as e:
            self._raise_if_lost(e)
            raise DeskWriteError(f"Timed out sending {label}") from e
        except DeskTransportError as e:
            self._raise_if_lost(e)
            raise DeskWriteError(f"Failed to send {label}: {e}") from e
        _LOGGER.debug("Sent %s (0x%04X)", label, code)

    async def _drive(self, direction: Direction):
        await self._write(direction.command, direction.value)

    def _check_idle(self):
        if self._motion_lock.locked():
            raise DeskBusyError("A move is already in progress on this desk")

    async def up(self):
        """Start moving up. The desk keeps going until stop() or its limit."""
        self._check_idle()
        await self._write(CMD_UP, "up")

    async def down(self):
        """Start moving down. The desk keeps going until stop() or its limit."""
        self._check_idle()
        await self._write(CMD_DOWN, "down")

    async def stop(self):
        """Stop desk movement. Safe to call at any time."""
        await self._write(CMD_STOP, "stop")

    async def wakeup(self):
        await self._write(CMD_WAKEUP, "wakeup")

    async def move_to(
        self,
        target: int,
        *,
        deadband: int | None = None,
        tolerance: int | None = None,
        stall_timeout: float | None = None,
    ) -> MoveResult:
        """
        Move the desk to ``target`` (0.1 mm) and stop it there.

        Args:
            target: Target position, 6200-12700
            deadband: Distance from the target that counts as arrived
            tolerance: Overshoot past the target that is still acceptable
            stall_timeout: Seconds without movement before giving up

        Returns:
            MoveResult with the final observed position

        Raises:
            HeightOutOfRangeError: If target is outside the desk's travel
            DeskStalledError: If the desk stopped reporting movement
            MoveCancelledError: If abort() was called
            DeskDisconnectedError: If the link dropped during the move
            DeskBusyError: If another move is in progress
        """
        self._check_idle()
        overrides = {
            "deadband": deadband,
            "overshoot_tolerance": tolerance,
            "stall_timeout": stall_timeout,
        }
        settings = replace(
            self.settings, **{k: v for k, v in overrides.items() if v is not None}
        )

        async with self._motion_lock:
            self._controller = MotionController(self, settings)
            try:
                return await self._controller.run(target)
            finally:
                self._controller = None

    def abort(self) -> bool:
        """
        Abort the move in progress, if any.

        Returns:
            True if a move was running
        """
        if self._controller is None:
            return False
        self._controller.abort()
        return True
