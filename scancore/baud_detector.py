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

"""
CAN bit rate auto-detection.

Tries each candidate in fixed priority order and listens for ordinary bus
traffic. A candidate wins as soon as enough frames arrive inside its window;
a controller at the wrong rate sees nothing (or only error frames).
"""

import logging
from typing import Optional, Sequence

from scancore.clock import Clock, MonotonicClock
from scancore.core import BAUD_CANDIDATES
from scancore.transport import BusError, BusTransport

logger = logging.getLogger(__name__)


class BaudRateDetector:
    """Find the bit rate the attached vehicle is talking at"""

    def __init__(self, transport: BusTransport, clock: Optional[Clock] = None,
                 window: float = 2.0, min_frames: int = 3, poll: float = 0.1,
                 candidates: Sequence[int] = BAUD_CANDIDATES):
        self.transport = transport
        self.clock = clock or MonotonicClock()
        self.window = window
        self.min_frames = min_frames
        self.poll = poll
        self.candidates = tuple(candidates)

    def detect(self) -> Optional[int]:
        """Return the detected bit rate, or None when no candidate shows activity."""
        logger.info("Auto-detecting CAN baud rate...")

        for bitrate in self.candidates:
            logger.info("Trying %d bps...", bitrate)
            try:
                self.transport.reconfigure(bitrate)
            except BusError as e:
                logger.warning("Could not configure controller at %d bps: %s", bitrate, e)
                continue

            frames = self._count_frames()
            if frames >= self.min_frames:
                logger.info("CAN activity detected at %d bps (%d frames)", bitrate, frames)
                return bitrate
            logger.info("No activity at %d bps", bitrate)

        return None

    def _count_frames(self) -> int:
        # stops early once min_frames is reached
        deadline = self.clock.deadline(self.window)
        count = 0
        while not deadline.expired():
            frame = self.transport.receive(deadline.slice(self.poll))
            if frame is None:
                continue
            count += 1
            if count >= self.min_frames:
                break
        return count
