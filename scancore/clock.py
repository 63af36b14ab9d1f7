# ⚠️ DISCLAIMER
# This software communicates directly with live vehicle systems.
# You use this software entirely at your own risk.
#
# The developers, contributors, and any associated parties accept no liability for:
# - Damage to vehicles, ECUs, batteries, or electronics
# - Data loss, unintended resets, or corrupted configurations
# - Physical injury, legal consequences, or financial loss
#
# This tool is intended only for qualified professionals who
# understand the risks of direct OBD/CAN access.

# File: scancore/clock.py
"""
Monotonic time source and deadlines used by every scan phase.

Phases never read wall-clock time directly; they get a Clock so tests can
swap in a fake one and run a full 45 s scan in microseconds.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Monotonic seconds + sleep."""

    @abstractmethod
    def now(self) -> float:
        pass

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        pass

    def deadline(self, seconds: float) -> "Deadline":
        return Deadline(self, seconds)


class MonotonicClock(Clock):
    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class Deadline:
    """A fixed budget measured from construction time."""

    def __init__(self, clock: Clock, seconds: float):
        self.clock = clock
        self.budget = seconds
        self.started = clock.now()
        self.expires_at = self.started + seconds

    def elapsed(self) -> float:
        return self.clock.now() - self.started

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock.now())

    def expired(self) -> bool:
        return self.clock.now() >= self.expires_at

    def exceeded(self) -> bool:
        """Strictly past the budget: `elapsed > budget`, not `>=`."""
        return self.elapsed() > self.budget

    def slice(self, poll: float) -> float:
        """Next poll timeout, capped so a wait never runs past the deadline."""
        return min(poll, self.remaining())

    def __repr__(self) -> str:
        return f"Deadline(budget={self.budget:.3f}s, remaining={self.remaining():.3f}s)"
