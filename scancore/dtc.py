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

# File: scancore/dtc.py
"""
Stored DTC (Mode 03) collection and decoding.

Response layout (single frame):
  [length, 0x43, b1, b2, b1, b2, ...]
Each (b1, b2) pair is one code; (00, 00) pairs are padding.

  b1 bits 7-6 : system  00=P 01=C 10=B 11=U
  b1 bits 5-0 : high six bits of the 14-bit value
  b2          : low eight bits
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional

from scancore.clock import Clock, MonotonicClock
from scancore.core import (
    DiagnosticTroubleCode, DtcCategory, Frame, OBDMode, request_id_for,
)
from scancore.transport import BusError, BusTransport

logger = logging.getLogger(__name__)

DTC_CODE_LENGTH = 5
DTC_DATA_OFFSET = 2


class PaddingStyle(Enum):
    LEGACY = "legacy"      # insert '0' after the letter until 5 chars
    STANDARD = "standard"  # letter + 4 hex digits, left zero padded


def pad_legacy(raw: str) -> str:
    code = raw
    while len(code) < DTC_CODE_LENGTH:
        code = code[:1] + "0" + code[1:]
    return code


def render_code(category: DtcCategory, value: int,
                padding: PaddingStyle = PaddingStyle.LEGACY) -> str:
    if padding is PaddingStyle.STANDARD:
        return f"{category.letter}{value:04X}"
    return pad_legacy(f"{category.letter}{value:X}")


class DTCDecoder:
    def __init__(self, padding: PaddingStyle = PaddingStyle.LEGACY):
        self.padding = padding

    def decode_pair(self, b1: int, b2: int, ecu_id: int) -> Optional[DiagnosticTroubleCode]:
        """One code from two bytes, or None for a (0, 0) slot."""
        if b1 == 0 and b2 == 0:
            return None
        category = DtcCategory.from_bits(b1 >> 6)
        value = ((b1 & 0x3F) << 8) | b2
        return DiagnosticTroubleCode(
            category=category,
            value=value,
            code=render_code(category, value, self.padding),
            ecu_id=ecu_id,
        )

    def decode(self, payload: bytes, ecu_id: int) -> List[DiagnosticTroubleCode]:
        """
        Decode every code in a Mode 03 response payload.
        Payloads of two bytes or fewer carry nothing and yield [].
        """
        codes: List[DiagnosticTroubleCode] = []
        if len(payload) <= DTC_DATA_OFFSET:
            return codes

        # a trailing odd byte is ignored
        for i in range(DTC_DATA_OFFSET, len(payload) - 1, 2):
            dtc = self.decode_pair(payload[i], payload[i + 1], ecu_id)
            if dtc is None:
                continue
            logger.info("DTC found: %s from ECU 0x%03X", dtc.code, ecu_id)
            codes.append(dtc)
        return codes


class DTCCollector:
    """Ask each discovered ECU for its stored codes"""

    def __init__(self, transport: BusTransport, decoder: Optional[DTCDecoder] = None,
                 clock: Optional[Clock] = None, response_timeout: float = 1.0,
                 pause: float = 0.1, poll: float = 0.05, send_timeout: float = 0.1):
        self.transport = transport
        self.decoder = decoder or DTCDecoder()
        self.clock = clock or MonotonicClock()
        self.response_timeout = response_timeout
        self.pause = pause
        self.poll = poll
        self.send_timeout = send_timeout

    def collect(self, active_ecus: Iterable[int]) -> List[DiagnosticTroubleCode]:
        ecus = list(active_ecus)
        if not ecus:
            logger.warning("No active ECUs found, skipping DTC scan")
            return []

        logger.info("Scanning for Diagnostic Trouble Codes...")
        codes: List[DiagnosticTroubleCode] = []
        for ecu_id in ecus:
            codes.extend(self.read_stored(ecu_id))
            self.clock.sleep(self.pause)
        return codes

    def read_stored(self, ecu_id: int) -> List[DiagnosticTroubleCode]:
        """Mode 03 against one ECU. Silence or a send failure means no codes."""
        logger.info("Scanning ECU 0x%03X for DTCs...", ecu_id)
        query = Frame.request(request_id_for(ecu_id), OBDMode.SHOW_STORED_DTCS)
        try:
            self.transport.send(query, self.send_timeout)
        except BusError as e:
            logger.warning("Mode 03 request to 0x%03X failed: %s", query.arbitration_id, e)
            return []

        wait = self.clock.deadline(self.response_timeout)
        while not wait.expired():
            frame = self.transport.receive(wait.slice(self.poll))
            if frame is None or frame.arbitration_id != ecu_id:
                continue
            logger.debug("DTC Response from 0x%03X: %s", ecu_id, frame.hex())
            return self.decoder.decode(frame.data, ecu_id)

        logger.debug("No DTC response from 0x%03X", ecu_id)
        return []
