"""
Runtime settings.

Settings come from keyword arguments or from ``DESK_*`` environment
variables, optionally loaded from a ``.env`` file.
"""

import os
from dataclasses import dataclass, fields

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "DESK_"


@dataclass(frozen=True)
class DeskSettings:
    """Timeouts and motion tuning for one desk."""

    address: str | None = None
    scan_timeout: float = 10.0
    connect_timeout: float = 30.0
    operation_timeout: float = 5.0
    # Motion tuning, in 0.1 mm and seconds
    deadband: int = 50
    overshoot_tolerance: int = 100
    stall_timeout: float = 2.0
    poll_interval: float | None = None
    stop_grace: float = 1.0

    def __post_init__(self):
        if self.deadband < 0:
            raise ValueError(f"deadband must be >= 0, got {self.deadband}")
        if self.overshoot_tolerance < 0:
            raise ValueError(
                f"overshoot_tolerance must be >= 0, got {self.overshoot_tolerance}"
            )
        for name in ("scan_timeout", "connect_timeout", "operation_timeout", "stall_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.poll_interval is not None and self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")

    @classmethod
    def from_env(cls, dotenv: bool = True, **overrides) -> "DeskSettings":
        """
        Build settings from the environment.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win)
            **overrides: Values that take precedence over the environment

        Raises:
            ValueError: If a variable cannot be parsed
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        values = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            raw = os.getenv(key)
            if raw is None or raw == "":
                continue
            values[f.name] = _parse(key, f.name, raw)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


_INT_FIELDS = {"deadband", "overshoot_tolerance"}
_STR_FIELDS = {"address"}


def _parse(key: str, name: str, raw: str):
    if name in _STR_FIELDS:
        return raw.strip().upper()
    try:
        if name in _INT_FIELDS:
            return int(raw)
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
