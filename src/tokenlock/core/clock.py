"""
Time sources for the vault.

The vault never reads global time. It asks an injected clock for ``now()``.
``SimulatedClock`` models block time the way a local development chain does:
the current time is the timestamp of the latest mined block, the next block's
timestamp can be staged or pushed forward, and ``mine`` seals it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Protocol, runtime_checkable

from .exceptions import ClockError

logger = logging.getLogger(__name__)


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int:
        """Current time in whole seconds since the epoch."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class SimulatedClock:
    """
    Deterministic, monotonically non-decreasing block time.

    ``now()`` is the latest block's timestamp. Transactions execute in the
    pending block, whose timestamp is ``pending_timestamp()``.
    """

    def __init__(self, start: int | None = None, automine: bool = True) -> None:
        self.timestamp = int(start if start is not None else time.time())
        if self.timestamp < 0:
            raise ClockError("Start timestamp cannot be negative")
        self.block_number = 0
        self.automine = automine
        self._next_timestamp: int | None = None
        self._time_offset = 0

    def now(self) -> int:
        return self.timestamp

    def pending_timestamp(self) -> int:
        """Timestamp the next mined block will carry."""
        if self._next_timestamp is not None:
            return self._next_timestamp
        return self.timestamp + max(1, self._time_offset)

    def set_next_timestamp(self, timestamp: int) -> None:
        """Stage the exact timestamp of the next block."""
        timestamp = int(timestamp)
        if timestamp <= self.timestamp:
            raise ClockError(
                f"Timestamp {timestamp} is lower than or equal to the previous "
                f"block's timestamp {self.timestamp}",
                details={"requested": timestamp, "current": self.timestamp},
            )
        self._next_timestamp = timestamp
        self._time_offset = 0

    def increase_time(self, seconds: int) -> int:
        """
        Push the next block's timestamp forward by ``seconds``.

        Returns:
            Seconds between the latest block and the pending block
        """
        seconds = int(seconds)
        if seconds < 0:
            raise ClockError("Cannot decrease time", details={"seconds": seconds})
        if self._next_timestamp is not None:
            self._next_timestamp += seconds
        else:
            self._time_offset += seconds
        return self.pending_timestamp() - self.timestamp

    def mine(self) -> int:
        """Seal a block at the pending timestamp and return it."""
        self.timestamp = self.pending_timestamp()
        self.block_number += 1
        self._next_timestamp = None
        self._time_offset = 0
        logger.debug(
            "Block mined",
            extra={
                "event": "clock.mined",
                "block_number": self.block_number,
                "timestamp": self.timestamp,
            },
        )
        return self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "block_number": self.block_number,
            "automine": self.automine,
            "next_timestamp": self._next_timestamp,
            "time_offset": self._time_offset,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulatedClock":
        clock = cls(start=data["timestamp"], automine=data.get("automine", True))
        clock.block_number = data.get("block_number", 0)
        clock._next_timestamp = data.get("next_timestamp")
        clock._time_offset = data.get("time_offset", 0)
        return clock
