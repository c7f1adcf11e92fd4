"""Time source for expiry decisions.

Nothing in ``anilist_session.auth`` reads the system time directly; the
manager receives a :class:`Clock` and every "is this token still valid"
question goes through it.  Tests and replay tooling pass a
:class:`FrozenClock` instead.

>>> clock = FrozenClock(1_700_000_000)
>>> clock.advance(30)
>>> clock()
1700000030.0
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Zero-argument callable giving the current UNIX time in seconds."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Wall-clock time via :func:`time.time`."""
    return time.time()


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: float) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
