"""Leasehold data models."""

import dataclasses
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Union

from .exceptions import ValidationError

Duration = Union[int, float, timedelta]

DEFAULT_WAIT_TIMEOUT = 0.0
DEFAULT_LEASE_TIME = 30.0
DEFAULT_WATCHDOG_TIMEOUT = 30.0
DEFAULT_KEY_PREFIX = "leasehold:"

# Fixed delay between acquisition attempts in Lock.lock().
RETRY_INTERVAL = 0.1


def to_seconds(value: Duration, field: str) -> float:
    """Normalise a duration to float seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number of seconds or a timedelta")
    return float(value)


class LockState(str, Enum):
    """Lock handle state enumeration."""
    IDLE = "idle"
    HELD = "held"
    LOST = "lost"


@dataclass(frozen=True)
class LockOptions:
    """Per-handle lock configuration.

    Attributes:
        wait_timeout: How long ``lock()`` keeps retrying, in seconds.
            ``0`` retries until the operation context ends.
        lease_time: Record TTL when the watchdog is disabled.
        watchdog: Keep the lock alive with a background refresher.
        watchdog_timeout: Record TTL when the watchdog is enabled; the
            watchdog refreshes every third of it.
    """
    wait_timeout: Duration = DEFAULT_WAIT_TIMEOUT
    lease_time: Duration = DEFAULT_LEASE_TIME
    watchdog: bool = False
    watchdog_timeout: Duration = DEFAULT_WATCHDOG_TIMEOUT

    def __post_init__(self):
        wait_timeout = to_seconds(self.wait_timeout, "wait_timeout")
        lease_time = to_seconds(self.lease_time, "lease_time")
        watchdog_timeout = to_seconds(self.watchdog_timeout, "watchdog_timeout")

        if wait_timeout < 0:
            raise ValidationError("wait_timeout must not be negative")
        if lease_time <= 0:
            raise ValidationError("lease_time must be positive")
        if watchdog_timeout <= 0:
            raise ValidationError("watchdog_timeout must be positive")
        if not isinstance(self.watchdog, bool):
            raise ValidationError("watchdog must be a bool")

        object.__setattr__(self, "wait_timeout", wait_timeout)
        object.__setattr__(self, "lease_time", lease_time)
        object.__setattr__(self, "watchdog_timeout", watchdog_timeout)

    @property
    def effective_lease(self) -> float:
        """TTL sent to Redis, in seconds."""
        if self.watchdog:
            return self.watchdog_timeout
        return self.lease_time

    @property
    def effective_lease_ms(self) -> int:
        return max(1, int(self.effective_lease * 1000))

    @property
    def watchdog_interval(self) -> float:
        # Two ticks may be missed before the record expires.
        return self.watchdog_timeout / 3

    def replace(self, **changes) -> "LockOptions":
        """Return a copy with the given fields changed."""
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ValidationError(f"Unknown lock option(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)
