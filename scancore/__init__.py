"""scancore: CAN bus diagnostic scan engine (baud detection, ECU discovery, Mode 03 DTCs)."""

from scancore.core import (
    BaudCandidate, DiagnosticTroubleCode, DtcCategory, Frame, ScanReport, ScanStatus,
)
from scancore.orchestrator import ScanOrchestrator, ScanPhase
from scancore.transport import BusError, BusTransport, CanBusTransport

__version__ = "0.1.0"

__all__ = [
    "BaudCandidate", "BusError", "BusTransport", "CanBusTransport",
    "DiagnosticTroubleCode", "DtcCategory", "Frame", "ScanOrchestrator",
    "ScanPhase", "ScanReport", "ScanStatus",
]
