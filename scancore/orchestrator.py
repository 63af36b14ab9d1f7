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
Scan Orchestrator Module

Runs one diagnostic scan end to end:

  1. baud detection   (0%)
  2. traffic sniff    (25%)
  3. ECU discovery    (50%)
  4. DTC collection   (75%)
  5. report           (100%)

One aggregate deadline covers the whole scan. It is only checked between
phases: a phase that has started always finishes, and once the deadline has
passed the next phase is skipped and the report is returned as TimedOut with
whatever was gathered so far.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, TypeVar

from scancore.baud_detector import BaudRateDetector
from scancore.clock import Clock, Deadline, MonotonicClock
from scancore.config import ScanSettings
from scancore.core import ScanReport, ScanStatus, TrafficSummary
from scancore.discovery import DiscoveryResult, ECUDiscovery
from scancore.dtc import DTCCollector, DTCDecoder, PaddingStyle
from scancore.logger import scan_context
from scancore.sniffer import TrafficSniffer
from scancore.transport import BusError, BusTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ------------------------------------------------------------------
#  Progress sink
# ------------------------------------------------------------------
class ProgressSink(ABC):
    """Receives the five scan milestones, synchronously"""

    @abstractmethod
    def report(self, message: str, percent: int) -> None:
        pass


class LoggingProgressSink(ProgressSink):
    def report(self, message: str, percent: int) -> None:
        logger.info("[%3d%%] %s", percent, message)


class CallbackProgressSink(ProgressSink):
    def __init__(self, callback: Callable[[str, int], None]):
        self.callback = callback

    def report(self, message: str, percent: int) -> None:
        self.callback(message, percent)


MSG_DETECTING = "Detecting vehicle..."
MSG_VEHICLE_FOUND = "Vehicle found! Analyzing..."
MSG_READING = "Reading vehicle data..."
MSG_CHECKING = "Checking systems..."
MSG_COMPLETE = "Scan complete!"
MSG_NO_VEHICLE = "No vehicle detected"
MSG_TIMEOUT = "Scan timeout"


# ------------------------------------------------------------------
#  Phase state machine
# ------------------------------------------------------------------
class ScanPhase(Enum):
    IDLE = "idle"
    DETECTING_BAUD = "detecting_baud"
    SNIFFING = "sniffing"
    DISCOVERING = "discovering"
    COLLECTING_CODES = "collecting_codes"
    DONE = "done"
    TIMED_OUT = "timed_out"
    NO_VEHICLE = "no_vehicle"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanPhase.DONE, ScanPhase.TIMED_OUT, ScanPhase.NO_VEHICLE)


_TRANSITIONS: Dict[ScanPhase, FrozenSet[ScanPhase]] = {
    ScanPhase.IDLE: frozenset({ScanPhase.DETECTING_BAUD}),
    ScanPhase.DETECTING_BAUD: frozenset({ScanPhase.SNIFFING, ScanPhase.NO_VEHICLE, ScanPhase.TIMED_OUT}),
    ScanPhase.SNIFFING: frozenset({ScanPhase.DISCOVERING, ScanPhase.TIMED_OUT}),
    ScanPhase.DISCOVERING: frozenset({ScanPhase.COLLECTING_CODES, ScanPhase.TIMED_OUT}),
    ScanPhase.COLLECTING_CODES: frozenset({ScanPhase.DONE}),
    ScanPhase.DONE: frozenset({ScanPhase.IDLE}),
    ScanPhase.TIMED_OUT: frozenset({ScanPhase.IDLE}),
    ScanPhase.NO_VEHICLE: frozenset({ScanPhase.IDLE}),
}


class InvalidTransition(Exception):
    pass


class PhaseTracker:
    """Current phase, readable from other threads; only the scan thread writes."""

    def __init__(self):
        self._phase = ScanPhase.IDLE
        self._lock = threading.Lock()

    @property
    def phase(self) -> ScanPhase:
        with self._lock:
            return self._phase

    def advance(self, target: ScanPhase) -> None:
        with self._lock:
            if target not in _TRANSITIONS[self._phase]:
                raise InvalidTransition(f"{self._phase.value} -> {target.value}")
            logger.debug("Phase %s -> %s", self._phase.value, target.value)
            self._phase = target

    def reset(self) -> None:
        # a scan interrupted by a non-bus exception leaves a mid phase behind
        with self._lock:
            if not (self._phase is ScanPhase.IDLE or self._phase.is_terminal):
                logger.warning("Previous scan ended in phase %s", self._phase.value)
            self._phase = ScanPhase.IDLE


# ------------------------------------------------------------------
#  Orchestrator
# ------------------------------------------------------------------
class ScanOrchestrator:
    def __init__(self, transport: BusTransport, settings: Optional[ScanSettings] = None,
                 clock: Optional[Clock] = None, progress: Optional[ProgressSink] = None):
        self.transport = transport
        self.settings = settings or ScanSettings()
        self.clock = clock or MonotonicClock()
        self.progress = progress or LoggingProgressSink()
        self.tracker = PhaseTracker()

    @property
    def phase(self) -> ScanPhase:
        return self.tracker.phase

    def scan(self, scan_id: Optional[str] = None) -> ScanReport:
        """Run one full scan. Never raises on bus faults; the status says how it ended.

        Log records emitted during the scan carry ``scan_id`` (generated when omitted).
        """
        with scan_context(scan_id) as sid:
            logger.info("Starting CAN bus diagnostic scan %s...", sid)
            return self._run()

    def _run(self) -> ScanReport:
        self.tracker.reset()
        report = ScanReport()
        deadline = self.clock.deadline(self.settings.total_timeout)

        # Step 1: auto-detect bit rate
        self._enter(ScanPhase.DETECTING_BAUD, MSG_DETECTING, 0)
        bitrate = self._guarded("baud detection", self._detect_baud, None)
        if bitrate is None:
            logger.warning("No CAN activity detected on any baud rate")
            return self._finish(report, deadline, ScanStatus.NO_VEHICLE_DETECTED)

        report.vehicle_detected = True
        report.bitrate = bitrate
        if deadline.exceeded():
            return self._finish(report, deadline, ScanStatus.TIMED_OUT)

        # Step 2: passive listen
        self._enter(ScanPhase.SNIFFING, MSG_VEHICLE_FOUND, 25)
        report.traffic = self._guarded("traffic sniff", self._sniff, TrafficSummary())
        self.progress.report(MSG_READING, 50)
        if deadline.exceeded():
            return self._finish(report, deadline, ScanStatus.TIMED_OUT)

        # Step 3: probe standard addresses
        self._enter(ScanPhase.DISCOVERING)
        found = self._guarded("ECU discovery", self._discover, DiscoveryResult())
        for ecu_id in found.active_ecus:
            report.add_ecu(ecu_id)
        self.progress.report(MSG_CHECKING, 75)
        if deadline.exceeded():
            return self._finish(report, deadline, ScanStatus.TIMED_OUT)

        # Step 4: stored codes
        self._enter(ScanPhase.COLLECTING_CODES)
        report.codes = self._guarded("DTC collection", self._collect, [], report.active_ecus)
        return self._finish(report, deadline, ScanStatus.COMPLETED)

    # ----------------------- phases -----------------------

    def _detect_baud(self) -> Optional[int]:
        s = self.settings
        return BaudRateDetector(self.transport, self.clock, window=s.baud_window,
                                min_frames=s.baud_min_frames, poll=s.baud_poll).detect()

    def _sniff(self) -> TrafficSummary:
        s = self.settings
        return TrafficSniffer(self.transport, self.clock, duration=s.sniff_duration,
                              poll=s.sniff_poll).listen()

    def _discover(self) -> DiscoveryResult:
        s = self.settings
        return ECUDiscovery(self.transport, self.clock, phase_timeout=s.probe_timeout,
                            response_timeout=s.probe_response_timeout, pause=s.probe_pause,
                            poll=s.response_poll, send_timeout=s.send_timeout).discover()

    def _collect(self, active_ecus):
        s = self.settings
        decoder = DTCDecoder(PaddingStyle(s.padding))
        return DTCCollector(self.transport, decoder, self.clock,
                            response_timeout=s.dtc_response_timeout, pause=s.dtc_pause,
                            poll=s.response_poll, send_timeout=s.send_timeout).collect(active_ecus)

    # ----------------------- helpers -----------------------

    def _guarded(self, name: str, step: Callable[..., T], fallback: T, *args) -> T:
        try:
            return step(*args)
        except BusError as e:
            logger.error("Bus fault during %s, continuing without it: %s", name, e)
            return fallback

    def _enter(self, phase: ScanPhase, message: Optional[str] = None,
               percent: Optional[int] = None) -> None:
        self.tracker.advance(phase)
        if message is not None:
            self.progress.report(message, percent)

    def _finish(self, report: ScanReport, deadline: Deadline, status: ScanStatus) -> ScanReport:
        report.status = status
        report.elapsed = deadline.elapsed()

        if status is ScanStatus.COMPLETED:
            self.tracker.advance(ScanPhase.DONE)
            self.progress.report(MSG_COMPLETE, 100)
            logger.info("Scan complete: %d active ECUs, %d fault codes (%.1fs)",
                        len(report.active_ecus), len(report.codes), report.elapsed)
        elif status is ScanStatus.TIMED_OUT:
            self.tracker.advance(ScanPhase.TIMED_OUT)
            self.progress.report(MSG_TIMEOUT, 100)
            logger.warning("Scan timeout reached after %.1fs", report.elapsed)
        else:
            self.tracker.advance(ScanPhase.NO_VEHICLE)
            self.progress.report(MSG_NO_VEHICLE, 100)

        return report
