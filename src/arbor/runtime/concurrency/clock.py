"""Clocks driving timer expiry.

MonotonicClock follows real time. VirtualClock only moves when the reactor
idles, jumping straight to the next deadline, which makes timing behaviour
deterministic in tests.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import ClassVar, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Time source consumed by the reactor."""

    virtual: bool

    def now(self) -> float: ...
    def sleep(self, seconds: float) -> None: ...


@dataclass(slots=True)
class MonotonicClock:
    """Real time from ``time.monotonic``; idling blocks the thread."""

    virtual: ClassVar[bool] = False

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


@dataclass(slots=True)
class VirtualClock:
    """Simulated time. ``sleep`` advances instantly.

    Example:
        >>> clock = VirtualClock()
        >>> clock.sleep(2.5)
        >>> clock.now()
        2.5
    """

    current: float = 0.0
    virtual: ClassVar[bool] = True

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.current += max(0.0, seconds)

    def advance(self, seconds: float) -> None:
        """Move time forward from outside the reactor."""
        self.sleep(seconds)
