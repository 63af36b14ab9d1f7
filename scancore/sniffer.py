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

import logging
from typing import Optional

from scancore.clock import Clock, MonotonicClock
from scancore.core import TrafficSummary
from scancore.transport import BusTransport

logger = logging.getLogger(__name__)

# how many distinct ids make it into the summary line
SUMMARY_ID_LIMIT = 20


class TrafficSniffer:
    """Passive listener. Its output never feeds discovery."""

    def __init__(self, transport: BusTransport, clock: Optional[Clock] = None,
                 duration: float = 5.0, poll: float = 0.05):
        self.transport = transport
        self.clock = clock or MonotonicClock()
        self.duration = duration
        self.poll = poll

    def listen(self) -> TrafficSummary:
        logger.info("Listening for raw CAN traffic (%.1fs)...", self.duration)
        summary = TrafficSummary()
        deadline = self.clock.deadline(self.duration)

        while not deadline.expired():
            frame = self.transport.receive(deadline.slice(self.poll))
            if frame is None:
                continue
            summary.record(frame)
            logger.debug("CAN Frame #%d: %s (Extended=%s)", summary.frame_count, frame,
                         "yes" if frame.is_extended else "no")

        logger.info("Traffic summary: %d frames, %d unique IDs",
                    summary.frame_count, len(summary.unique_ids))
        if summary.unique_ids:
            logger.info("Unique CAN IDs: %s", " ".join(
                f"0x{i:03X}" for i in summary.unique_ids[:SUMMARY_ID_LIMIT]))
        return summary
