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
Simulated vehicle bus.

Scriptable stand-in for a real CAN controller, driven entirely by a
FakeClock: waiting advances simulated time instead of sleeping, so a whole
45 s scan runs instantly and repeats exactly.

Features:
- Vehicle bit rate (traffic and responses only exist at that rate)
- Periodic background traffic on configurable ids
- Per-address ECU responders for Mode 01 PID 00 and Mode 03
- Bit rates whose reconfigure fails, transmit failures, response latency
- Records every reconfigure attempt and transmitted frame
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from scancore.clock import Clock
from scancore.core import Frame, OBDMode, response_id_for
from scancore.transport import BusConfigurationError, BusTransmitError, BusTransport

logger = logging.getLogger(__name__)

# Mode 01 PID 00 positive response: 41 00 + supported-PID bitmap
DEFAULT_SUPPORTED_PIDS = bytes([0x06, 0x41, 0x00, 0xBE, 0x3F, 0xA8, 0x13, 0x00])
# Mode 03 positive response with no stored codes
NO_CODES = bytes([0x02, 0x43, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])

DEFAULT_TRAFFIC_IDS = (0x0C9, 0x1E5, 0x3E9)


class FakeClock(Clock):
    """Manual monotonic clock. sleep() advances time immediately."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._now += seconds

    def advance_to(self, when: float) -> None:
        if when > self._now:
            self._now = when


@dataclass
class SimulatedECU:
    request_id: int
    response_id: Optional[int] = None
    supported_pids: Optional[bytes] = DEFAULT_SUPPORTED_PIDS  # None: ignore Mode 01
    stored_codes: Optional[bytes] = NO_CODES                   # None: ignore Mode 03
    latency: float = 0.01

    def __post_init__(self) -> None:
        if self.response_id is None:
            self.response_id = response_id_for(self.request_id)

    def answer(self, request: Frame) -> Optional[Frame]:
        if len(request.data) < 2:
            return None
        mode = request.data[1]
        if mode == OBDMode.SHOW_CURRENT_DATA and self.supported_pids is not None:
            return Frame(self.response_id, self.supported_pids)
        if mode == OBDMode.SHOW_STORED_DTCS and self.stored_codes is not None:
            return Frame(self.response_id, self.stored_codes)
        return None


@dataclass
class BusActivity:
    """What the simulator saw, for assertions"""
    reconfigures: List[int] = field(default_factory=list)
    sent: List[Frame] = field(default_factory=list)

    def sent_to(self, arbitration_id: int) -> List[Frame]:
        return [f for f in self.sent if f.arbitration_id == arbitration_id]


class SimulatedBusTransport(BusTransport):
    def __init__(self, clock: Optional[FakeClock] = None,
                 vehicle_bitrate: Optional[int] = 500_000,
                 ecus: Iterable[SimulatedECU] = (),
                 traffic_ids: Sequence[int] = DEFAULT_TRAFFIC_IDS,
                 traffic_interval: float = 0.02,
                 failing_bitrates: Iterable[int] = (),
                 fail_sends: bool = False):
        self.clock = clock or FakeClock()
        self.vehicle_bitrate = vehicle_bitrate
        self.ecus = list(ecus)
        self.traffic_ids = tuple(traffic_ids)
        self.traffic_interval = traffic_interval
        self.failing_bitrates: Set[int] = set(failing_bitrates)
        self.fail_sends = fail_sends
        self.activity = BusActivity()

        self.bitrate: Optional[int] = None
        self._pending: List[Tuple[float, int, Frame]] = []
        self._seq = itertools.count()
        self._next_traffic: Optional[float] = None
        self._traffic_index = 0

    # ----------------------- BusTransport -----------------------

    @property
    def is_running(self) -> bool:
        return self.bitrate is not None

    @property
    def in_sync(self) -> bool:
        return self.is_running and self.bitrate == self.vehicle_bitrate

    def reconfigure(self, bitrate: int) -> None:
        self.activity.reconfigures.append(bitrate)
        self.bitrate = None
        self._pending.clear()
        self._next_traffic = None

        if bitrate in self.failing_bitrates:
            raise BusConfigurationError(f"simulated install failure at {bitrate} bps")

        self.bitrate = bitrate
        if self.in_sync and self.traffic_ids:
            self._next_traffic = self.clock.now() + self.traffic_interval
        logger.debug("Simulated controller running at %d bps", bitrate)

    def send(self, frame: Frame, timeout: float) -> None:
        if not self.is_running:
            raise BusTransmitError("controller not running")
        if self.fail_sends:
            raise BusTransmitError("simulated transmit failure")
        self.activity.sent.append(frame)
        if not self.in_sync:
            return

        for ecu in self.ecus:
            if ecu.request_id != frame.arbitration_id:
                continue
            reply = ecu.answer(frame)
            if reply is not None:
                heapq.heappush(self._pending,
                               (self.clock.now() + ecu.latency, next(self._seq), reply))

    def receive(self, timeout: float) -> Optional[Frame]:
        now = self.clock.now()
        limit = now + max(0.0, timeout)

        due_reply = self._pending[0][0] if self._pending else None
        due_traffic = self._next_traffic

        # replies win ties with background traffic
        if due_reply is not None and due_reply <= limit and (
                due_traffic is None or due_reply <= due_traffic):
            when, _, frame = heapq.heappop(self._pending)
            self.clock.advance_to(when)
            return frame

        if due_traffic is not None and due_traffic <= limit:
            self.clock.advance_to(due_traffic)
            frame = Frame(self.traffic_ids[self._traffic_index % len(self.traffic_ids)],
                          bytes([self._traffic_index & 0xFF, 0, 0, 0, 0, 0, 0, 0]))
            self._traffic_index += 1
            self._next_traffic = due_traffic + self.traffic_interval
            return frame

        self.clock.advance_to(limit)
        return None

    def shutdown(self) -> None:
        self.bitrate = None
        self._pending.clear()
        self._next_traffic = None
