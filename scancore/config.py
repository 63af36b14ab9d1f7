# File: scancore/config.py
# scancore: runtime configuration

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# optional .env next to the working directory overrides nothing already set
load_dotenv()

log = logging.getLogger(__name__)


# -------- helpers --------
def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v not in (None, "") else default

def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))
    except ValueError:
        log.warning("Invalid %s=%r, using %d", name, os.getenv(name), default)
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        log.warning("Invalid %s=%r, using %s", name, os.getenv(name), default)
        return default

def _env_bool(name: str, default: bool) -> bool:
    v = _env(name, str(default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on") if v else default


# ---- Bus binding (python-can) ----
# Linux SocketCAN: interface "socketcan", channel "can0"
# Serial slcan adapters: interface "slcan", channel "/dev/ttyACM0" or "COM5"
CAN_INTERFACE = _env("CAN_INTERFACE", "socketcan")
CAN_CHANNEL   = _env("CAN_CHANNEL", "can0")
# SocketCAN bit timing lives on the kernel link; e.g. "sudo ip" when not root
CAN_IP_COMMAND = _env("CAN_IP_COMMAND", "ip")

# ---- Scan timing (seconds) ----
TOTAL_SCAN_TIMEOUT_SEC     = _env_float("TOTAL_SCAN_TIMEOUT_SEC", 45.0)
BAUD_DETECT_TIMEOUT_SEC    = _env_float("BAUD_DETECT_TIMEOUT_SEC", 2.0)    # per bit rate
BAUD_DETECT_MIN_FRAMES     = _env_int("BAUD_DETECT_MIN_FRAMES", 3)
TRAFFIC_LISTEN_TIMEOUT_SEC = _env_float("TRAFFIC_LISTEN_TIMEOUT_SEC", 5.0)
ECU_PROBE_TIMEOUT_SEC      = _env_float("ECU_PROBE_TIMEOUT_SEC", 15.0)
ECU_RESPONSE_TIMEOUT_SEC   = _env_float("ECU_RESPONSE_TIMEOUT_SEC", 0.8)   # per address
ECU_PROBE_PAUSE_SEC        = _env_float("ECU_PROBE_PAUSE_SEC", 0.05)
DTC_RESPONSE_TIMEOUT_SEC   = _env_float("DTC_RESPONSE_TIMEOUT_SEC", 1.0)
DTC_PAUSE_SEC              = _env_float("DTC_PAUSE_SEC", 0.1)
SEND_TIMEOUT_SEC           = _env_float("SEND_TIMEOUT_SEC", 0.1)

# ---- Decoding ----
PADDING_STYLES = ("legacy", "standard")
DTC_PADDING = _env("DTC_PADDING", "legacy").strip().lower()

# ---- Logging ----
DEBUG_MODE = _env_bool("DEBUG_MODE", False)
LOG_DIR    = Path(_env("LOG_DIR", "logs")).expanduser()


@dataclass(frozen=True)
class ScanSettings:
    """Timing knobs for one scan. Defaults are the kiosk timings."""
    total_timeout: float = 45.0
    baud_window: float = 2.0
    baud_min_frames: int = 3
    baud_poll: float = 0.1
    sniff_duration: float = 5.0
    sniff_poll: float = 0.05
    probe_timeout: float = 15.0
    probe_response_timeout: float = 0.8
    probe_pause: float = 0.05
    dtc_response_timeout: float = 1.0
    dtc_pause: float = 0.1
    response_poll: float = 0.05
    send_timeout: float = 0.1
    padding: str = "legacy"

    def __post_init__(self) -> None:
        if self.padding not in PADDING_STYLES:
            raise ValueError(f"padding must be one of {PADDING_STYLES}")
        if self.baud_min_frames < 1:
            raise ValueError("baud_min_frames must be >= 1")


def load_settings() -> ScanSettings:
    """Build settings from the environment-derived module constants."""
    padding = DTC_PADDING
    if padding not in PADDING_STYLES:
        log.warning("Unknown DTC_PADDING=%r, using 'legacy'", padding)
        padding = "legacy"
    return ScanSettings(
        total_timeout=TOTAL_SCAN_TIMEOUT_SEC,
        baud_window=BAUD_DETECT_TIMEOUT_SEC,
        baud_min_frames=BAUD_DETECT_MIN_FRAMES,
        sniff_duration=TRAFFIC_LISTEN_TIMEOUT_SEC,
        probe_timeout=ECU_PROBE_TIMEOUT_SEC,
        probe_response_timeout=ECU_RESPONSE_TIMEOUT_SEC,
        probe_pause=ECU_PROBE_PAUSE_SEC,
        dtc_response_timeout=DTC_RESPONSE_TIMEOUT_SEC,
        dtc_pause=DTC_PAUSE_SEC,
        send_timeout=SEND_TIMEOUT_SEC,
        padding=padding,
    )
