"""
Closed-loop positioning.

The desk only understands "up", "down" and "stop", so moving to a height
means starting the motor once, watching height notifications, and stopping
as soon as the desk is within the deadband of the target. Every exit from
the moving state goes through a stop write, except when the link itself is
gone.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ble_desk.config import DeskSettings
from ble_desk.exceptions import (
    DeskDisconnectedError,
    DeskError,
    DeskStalledError,
    MoveCancelledError,
)
from ble_desk.protocol import Direction, validate_position

if TYPE_CHECKING:
    from ble_desk.session import DeskSession

_LOGGER = logging.getLogger(__name__)


class Signal(enum.Enum):
    """Out-of-band events delivered alongside position updates."""

    LINK_LOST = "link_lost"
    ABORT = "abort"


class MoveState(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    MOVING = "moving"
    STOPPING = "stopping"
    SETTLED = "settled"
    STALLED = "stalled"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class MoveResult:
    """Outcome of a successful move."""

    position: int
    target: int
    direction: Direction
    overshoot: int = 0
    within_tolerance: bool = True

    @property
    def error(self) -> int:
        """Signed distance from the target (positive means above it)."""
        return self.position - self.target


def remaining_distance(direction: Direction, target: int, position: int) -> int:
    """Distance still to travel in ``direction``; negative once past the target."""
    if direction is Direction.UP:
        return target - position
    return position - target


class MotionController:
    """Runs a single move_to on a session."""

    def __init__(self, session: "DeskSession", settings: DeskSettings):
        self._session = session
        self._settings = settings
        self._updates: asyncio.Queue | None = None
        self._aborted = False
        self.state = MoveState.IDLE
        self.history = [MoveState.IDLE]

    def _enter(self, state: MoveState):
        _LOGGER.debug("Move state %s -> %s", self.state.name, state.name)
        self.state = state
        self.history.append(state)

    def abort(self):
        """Ask the running move to stop the desk and give up."""
        self._aborted = True
        if self._updates is not None:
            self._updates.put_nowait(Signal.ABORT)

    async def run(self, target: int) -> MoveResult:
        self._enter(MoveState.VALIDATING)
        try:
            validate_position(target)
            current = await self._session.position()
        except DeskError:
            self._enter(MoveState.FAILED)
            raise

        if abs(target - current) <= self._settings.deadband:
            _LOGGER.info("Already at %d (target %d)", current, target)
            await self._settle()
            return MoveResult(current, target, Direction.STOPPED)

        if self._aborted:
            self._enter(MoveState.CANCELLED)
            raise MoveCancelledError(current, target)

        direction = Direction.UP if target > current else Direction.DOWN
        self._updates = self._session._open_updates()
        try:
            self._enter(MoveState.MOVING)
            _LOGGER.info("Moving %s: %d -> %d", direction.value, current, target)
            position = await self._move(direction, target, current)
        finally:
            self._session._close_updates(self._updates)
            self._updates = None

        await self._settle()

        overshoot = max(0, -remaining_distance(direction, target, position))
        within_tolerance = overshoot <= self._settings.overshoot_tolerance
        if not within_tolerance:
            _LOGGER.warning(
                "Overshot target %d by %d (tolerance %d)",
                target,
                overshoot,
                self._settings.overshoot_tolerance,
            )
        _LOGGER.info("Done: %d (error: %d)", position, position - target)
        return MoveResult(position, target, direction, overshoot, within_tolerance)

    async def _move(self, direction: Direction, target: int, start: int) -> int:
        try:
            await self._session._drive(direction)
            return await self._observe(direction, target, start)
        except DeskDisconnectedError:
            # Nothing can be written to a dropped link
            self._enter(MoveState.FAILED)
            raise
        except DeskStalledError as e:
            _LOGGER.warning("Stalled at %d (target %d)", e.position, target)
            await self._emergency_stop()
            self._enter(MoveState.STALLED)
            raise
        except MoveCancelledError:
            await self._emergency_stop()
            self._enter(MoveState.CANCELLED)
            raise
        except asyncio.CancelledError:
            await self._emergency_stop()
            self._enter(MoveState.CANCELLED)
            raise
        except DeskError:
            await self._emergency_stop()
            self._enter(MoveState.FAILED)
            raise

    async def _observe(self, direction: Direction, target: int, start: int) -> int:
        """Wait for notifications until the desk reaches the target."""
        loop = asyncio.get_running_loop()
        stall_timeout = self._settings.stall_timeout
        poll_interval = self._settings.poll_interval
        last = start
        best = remaining_distance(direction, target, start)
        deadline = loop.time() + stall_timeout

        while True:
            if self._aborted:
                raise MoveCancelledError(last, target)
            if not self._session.is_connected:
                raise DeskDisconnectedError(f"Desk disconnected during move at {last}")

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise DeskStalledError(last, target, stall_timeout)

            wait = remaining if poll_interval is None else min(remaining, poll_interval)
            try:
                update = await asyncio.wait_for(self._updates.get(), wait)
            except TimeoutError:
                if poll_interval is None:
                    continue
                update = await self._session.position()

            if update is Signal.ABORT:
                continue
            if update is Signal.LINK_LOST:
                raise DeskDisconnectedError(f"Desk disconnected during move at {last}")
            if update == last:
                continue

            last = update
            remaining_travel = remaining_distance(direction, target, update)
            # Only movement towards the target counts as progress
            if remaining_travel < best:
                best = remaining_travel
                deadline = loop.time() + stall_timeout
            if remaining_travel <= self._settings.deadband:
                return update

    async def _settle(self):
        self._enter(MoveState.STOPPING)
        stop = asyncio.ensure_future(self._session.stop())
        try:
            await asyncio.shield(stop)
        except asyncio.CancelledError:
            # The stop already on the wire must land before unwinding
            await self._finish_stop(stop)
            self._enter(MoveState.CANCELLED)
            raise
        except DeskError:
            self._enter(MoveState.FAILED)
            raise
        self._enter(MoveState.SETTLED)

    async def _finish_stop(self, stop: asyncio.Future):
        done, _ = await asyncio.wait({stop}, timeout=self._settings.stop_grace)
        if not done:
            _LOGGER.error("Stop not confirmed within %gs", self._settings.stop_grace)
        elif stop.exception() is not None:
            _LOGGER.error("Failed to stop desk: %s", stop.exception())

    async def _emergency_stop(self):
        """Best-effort stop, bounded by the stop grace period."""
        self._enter(MoveState.STOPPING)
        if not self._session.is_connected:
            return
        try:
            async with asyncio.timeout(self._settings.stop_grace):
                await self._session.stop()
        except (DeskError, TimeoutError) as e:
            _LOGGER.error("Failed to stop desk: %s", e)
