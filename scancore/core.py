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

# ------------------------------------------------------------------
#  scancore/core.py  –  frames, fault codes and the scan report
# ------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

# ------------------------------------------------------------------
#  Addressing
# ------------------------------------------------------------------
MAX_STANDARD_ID = 0x7FF
MAX_EXTENDED_ID = 0x1FFFFFFF
MAX_PAYLOAD = 8

# Standard OBD2 request addresses, probed in this order
OBD2_REQUEST_IDS: Tuple[int, ...] = tuple(range(0x7E0, 0x7F0))

RESPONSE_OFFSET = 8
FUNCTIONAL_RESPONSE_RANGE = range(0x7E8, 0x7F0)


def response_id_for(request_id: int) -> int:
    """Functional response id an ECU answers from for ``request_id``."""
    return request_id + RESPONSE_OFFSET


def request_id_for(response_id: int) -> int:
    """Request id that addresses the ECU answering from ``response_id``."""
    return response_id - RESPONSE_OFFSET


def is_functional_response(arbitration_id: int) -> bool:
    return arbitration_id in FUNCTIONAL_RESPONSE_RANGE


# ------------------------------------------------------------------
#  OBD modes used by the scan
# ------------------------------------------------------------------
class OBDMode(IntEnum):
    """Standard OBD-II modes"""
    SHOW_CURRENT_DATA = 0x01
    SHOW_STORED_DTCS = 0x03


# ------------------------------------------------------------------
#  Bit rates, in fixed priority order (not sorted by value)
# ------------------------------------------------------------------
class BaudCandidate(IntEnum):
    BAUD_500K = 500_000
    BAUD_250K = 250_000
    BAUD_125K = 125_000
    BAUD_1M = 1_000_000


BAUD_CANDIDATES: Tuple[BaudCandidate, ...] = (
    BaudCandidate.BAUD_500K,
    BaudCandidate.BAUD_250K,
    BaudCandidate.BAUD_125K,
    BaudCandidate.BAUD_1M,
)


# ------------------------------------------------------------------
#  CAN frame – immutable once built or received
# ------------------------------------------------------------------
@dataclass(frozen=True)
class Frame:
    arbitration_id: int
    data: bytes = b""
    is_extended: bool = False

    def __post_init__(self) -> None:
        # accept lists / bytearrays, store bytes
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) > MAX_PAYLOAD:
            raise ValueError(f"payload too long: {len(self.data)} bytes")
        limit = MAX_EXTENDED_ID if self.is_extended else MAX_STANDARD_ID
        if not 0 <= self.arbitration_id <= limit:
            raise ValueError(f"arbitration id out of range: 0x{self.arbitration_id:X}")

    @property
    def dlc(self) -> int:
        return len(self.data)

    @classmethod
    def request(cls, arbitration_id: int, mode: int, pid: Optional[int] = None) -> "Frame":
        """
        Single-frame diagnostic request, always 8 bytes:
        [length, mode, pid_or_zero, 0, 0, 0, 0, 0]
        """
        payload = bytearray(MAX_PAYLOAD)
        if pid is None:
            payload[0] = 0x01
        else:
            payload[0] = 0x02
            payload[2] = pid
        payload[1] = mode
        return cls(arbitration_id, bytes(payload))

    def hex(self) -> str:
        return " ".join(f"{b:02X}" for b in self.data)

    def __str__(self) -> str:
        width = 8 if self.is_extended else 3
        return f"ID=0x{self.arbitration_id:0{width}X} DLC={self.dlc} Data={self.hex()}"


# ------------------------------------------------------------------
#  Diagnostic trouble codes
# ------------------------------------------------------------------
class DtcCategory(Enum):
    """DTC system, indexed by the top two bits of the first byte."""
    POWERTRAIN = "P"
    CHASSIS = "C"
    BODY = "B"
    NETWORK = "U"

    @property
    def letter(self) -> str:
        return self.value

    @classmethod
    def from_bits(cls, bits: int) -> "DtcCategory":
        return _CATEGORY_ORDER[bits & 0x03]


_CATEGORY_ORDER = (
    DtcCategory.POWERTRAIN,
    DtcCategory.CHASSIS,
    DtcCategory.BODY,
    DtcCategory.NETWORK,
)


@dataclass(frozen=True)
class DiagnosticTroubleCode:
    category: DtcCategory
    value: int       # 14-bit
    code: str        # rendered, e.g. "P0123"
    ecu_id: int      # response id of the owning ECU
    is_pending: bool = False  # pending codes (mode 07) are never queried

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 0x3FFF:
            raise ValueError("value must fit in 14 bits")
        if not self.code:
            raise ValueError("code is required")

    @property
    def system(self) -> str:
        return f"ECU 0x{self.ecu_id:x}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.name.lower(),
            "value": self.value,
            "system": self.system,
            "ecu_id": self.ecu_id,
            "pending": self.is_pending,
        }


# ------------------------------------------------------------------
#  Scan results
# ------------------------------------------------------------------
class ScanStatus(Enum):
    NO_VEHICLE_DETECTED = "NoVehicleDetected"
    TIMED_OUT = "TimedOut"
    COMPLETED = "Completed"


@dataclass
class TrafficSummary:
    """Passive listening result. Observational only."""
    frame_count: int = 0
    unique_ids: List[int] = field(default_factory=list)

    def record(self, frame: Frame) -> None:
        self.frame_count += 1
        if frame.arbitration_id not in self.unique_ids:
            self.unique_ids.append(frame.arbitration_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_count": self.frame_count,
            "unique_ids": [f"0x{i:03X}" for i in self.unique_ids],
        }


@dataclass
class ScanReport:
    active_ecus: List[int] = field(default_factory=list)
    codes: List[DiagnosticTroubleCode] = field(default_factory=list)
    vehicle_detected: bool = False
    elapsed: float = 0.0
    status: ScanStatus = ScanStatus.NO_VEHICLE_DETECTED
    bitrate: Optional[int] = None
    traffic: Optional[TrafficSummary] = None

    def add_ecu(self, response_id: int) -> bool:
        """Record an active ECU once, keeping discovery order."""
        if response_id in self.active_ecus:
            return False
        self.active_ecus.append(response_id)
        return True

    @property
    def code_strings(self) -> List[str]:
        return [c.code for c in self.codes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "vehicle_detected": self.vehicle_detected,
            "elapsed_s": round(self.elapsed, 3),
            "bitrate": self.bitrate,
            "active_ecus": [f"0x{e:03X}" for e in self.active_ecus],
            "codes": [c.to_dict() for c in self.codes],
            "traffic": self.traffic.to_dict() if self.traffic else None,
        }
