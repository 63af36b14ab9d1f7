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
Active ECU discovery.

Sends Mode 01 PID 00 (supported PIDs 01-20) to each standard OBD2 request
address and records which functional response ids answer. Every address is
probed at most once; the phase deadline cuts the sweep short but never drops
what was already found.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from scancore.clock import Clock, MonotonicClock
from scancore.core import (
    OBD2_REQUEST_IDS, Frame, OBDMode, is_functional_response, response_id_for,
)
from scancore.transport import BusError, BusTransport

logger = logging.getLogger(__name__)

SUPPORTED_PIDS_01_20 = 0x00


@dataclass
class DiscoveryResult:
    active_ecus: List[int] = field(default_factory=list)
    probed: List[int] = field(default_factory=list)
    timed_out: bool = False


class ECUDiscovery:
    def __init__(self, transport: BusTransport, clock: Optional[Clock] = None,
                 phase_timeout: float = 15.0, response_timeout: float = 0.8,
                 pause: float = 0.05, poll: float = 0.05, send_timeout: float = 0.1,
                 addresses: Sequence[int] = OBD2_REQUEST_IDS):
        self.transport = transport
        self.clock = clock or MonotonicClock()
        self.phase_timeout = phase_timeout
        self.response_timeout = response_timeout
        self.pause = pause
        self.poll = poll
        self.send_timeout = send_timeout
        self.addresses = tuple(addresses)

    def discover(self) -> DiscoveryResult:
        logger.info("Actively probing for OBD2 ECUs...")
        result = DiscoveryResult()
        phase = self.clock.deadline(self.phase_timeout)
        total = len(self.addresses)

        for index, request_id in enumerate(self.addresses):
            if phase.exceeded():
                logger.warning("ECU probing timeout after %d ECUs", index)
                result.timed_out = True
                break

            logger.debug("Probing ECU 0x%03X (%d/%d)...", request_id, index + 1, total)
            result.probed.append(request_id)

            responder = self._probe(request_id)
            if responder is not None:
                if responder in result.active_ecus:
                    logger.debug("ECU 0x%03X already recorded", responder)
                else:
                    result.active_ecus.append(responder)
                    logger.info("Active ECU found: 0x%03X responded from 0x%03X",
                                request_id, responder)

            self.clock.sleep(self.pause)

        logger.info("Found %d active OBD2 ECUs", len(result.active_ecus))
        return result

    def _probe(self, request_id: int) -> Optional[int]:
        """Send one supported-PID query; return the qualifying responder id."""
        query = Frame.request(request_id, OBDMode.SHOW_CURRENT_DATA, SUPPORTED_PIDS_01_20)
        try:
            self.transport.send(query, self.send_timeout)
        except BusError as e:
            logger.debug("Probe to 0x%03X not sent: %s", request_id, e)
            return None

        expected = response_id_for(request_id)
        wait = self.clock.deadline(self.response_timeout)
        while not wait.expired():
            frame = self.transport.receive(wait.slice(self.poll))
            if frame is None:
                continue
            if frame.arbitration_id == expected or is_functional_response(frame.arbitration_id):
                logger.debug("Response: %s", frame.hex())
                return frame.arbitration_id
        return None
