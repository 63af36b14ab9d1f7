#!/usr/bin/env python3
# File: scancore/cli/scan.py
"""
scancore: diagnostic scan runner

Runs the full scan (baud detection, traffic sniff, ECU discovery, Mode 03
DTCs) and prints the report.

Usage:
  python -m scancore.cli.scan scan                         # socketcan can0 (or CAN_INTERFACE/CAN_CHANNEL)
  python -m scancore.cli.scan scan --interface slcan --channel /dev/ttyACM0
  python -m scancore.cli.scan scan --json                  # machine-readable report
  python -m scancore.cli.scan simulate --ecu 7E0=0543012300000000
  python -m scancore.cli.scan simulate --silent            # no vehicle attached
  python -m scancore.cli.scan ports                        # list serial ports (slcan adapters)

Exit codes: 0 completed, 1 no vehicle, 2 timed out.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

from serial.tools.list_ports import comports

from scancore import config
from scancore.core import BAUD_CANDIDATES, ScanReport, ScanStatus
from scancore.logger import setup_logging
from scancore.orchestrator import ScanOrchestrator
from scancore.simulator import NO_CODES, FakeClock, SimulatedBusTransport, SimulatedECU
from scancore.transport import CanBusTransport

EXIT_CODES = {
    ScanStatus.COMPLETED: 0,
    ScanStatus.NO_VEHICLE_DETECTED: 1,
    ScanStatus.TIMED_OUT: 2,
}


# ------------------------------- output -------------------------------

def format_report(report: ScanReport) -> str:
    lines = [f"Status: {report.status.value} ({report.elapsed:.1f}s)"]
    if not report.vehicle_detected:
        lines.append("Vehicle detected: no")
        return "\n".join(lines)

    lines.append(f"Vehicle detected: yes @ {report.bitrate} bps")
    if report.traffic is not None:
        lines.append(f"Traffic: {report.traffic.frame_count} frames, "
                     f"{len(report.traffic.unique_ids)} unique IDs")
    ecus = ", ".join(f"0x{e:03X}" for e in report.active_ecus) or "none"
    lines.append(f"Active ECUs ({len(report.active_ecus)}/16): {ecus}")
    if not report.codes:
        lines.append("No stored DTCs.")
    else:
        lines.append("Stored DTCs:")
        for dtc in report.codes:
            lines.append(f"  • {dtc.code}  ({dtc.category.name.lower()}, {dtc.system})")
    return "\n".join(lines)


def _emit(report: ScanReport, as_json: bool) -> int:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))
    return EXIT_CODES[report.status]


# ------------------------------- argument helpers -------------------------------

def parse_ecu(text: str) -> SimulatedECU:
    """
    '7E0'                    -> responder at 0x7E0/0x7E8 with no stored codes
    '7E0=0543012300000000'   -> same, answering Mode 03 with that payload
    """
    addr, _, payload = text.partition("=")
    try:
        request_id = int(addr, 16)
        codes = bytes.fromhex(payload) if payload else NO_CODES
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ECU {text!r}: {e}")
    if not 0 <= request_id <= 0x7FF - 8:
        raise argparse.ArgumentTypeError(f"request id out of range: {addr}")
    if len(codes) > 8:
        raise argparse.ArgumentTypeError(f"Mode 03 payload longer than 8 bytes: {text!r}")
    return SimulatedECU(request_id, stored_codes=codes)


def _settings(args: argparse.Namespace) -> config.ScanSettings:
    settings = config.load_settings()
    if args.padding:
        settings = replace(settings, padding=args.padding)
    return settings


# ------------------------------- actions -------------------------------

def action_scan(args: argparse.Namespace) -> int:
    with CanBusTransport(interface=args.interface, channel=args.channel) as transport:
        report = ScanOrchestrator(transport, _settings(args)).scan()
    return _emit(report, args.json)


def action_simulate(args: argparse.Namespace) -> int:
    clock = FakeClock()
    ecus: List[SimulatedECU] = args.ecu or [SimulatedECU(0x7E0)]
    transport = SimulatedBusTransport(
        clock=clock,
        vehicle_bitrate=None if args.silent else args.bitrate,
        ecus=ecus,
    )
    report = ScanOrchestrator(transport, _settings(args), clock=clock).scan()
    return _emit(report, args.json)


def list_ports() -> int:
    """List available serial ports."""
    ports = comports()
    if not ports:
        print("No serial ports found.")
        return 0

    print("Available serial ports:")
    for port in ports:
        desc = f"{port.description}" if port.description else "Unknown device"
        print(f"  • {port.device}: {desc}")
    return 0


# ------------------------------- CLI -------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="scancore-scan",
        description="CAN bus diagnostic scan (baud detect, ECU discovery, Mode 03)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    p.add_argument("--debug", action="store_true", help="Verbose console logging")
    p.add_argument("--no-log-file", action="store_true", help="Console logging only")
    sub = p.add_subparsers(dest="cmd", required=True)

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--json", action="store_true", help="Print the report as JSON")
        sp.add_argument("--padding", choices=config.PADDING_STYLES,
                        help="DTC zero padding (default: DTC_PADDING or 'legacy')")

    p_scan = sub.add_parser("scan", help="Scan the attached vehicle")
    p_scan.add_argument("--interface", default=config.CAN_INTERFACE,
                        help="python-can interface (socketcan, slcan, pcan, ...)")
    p_scan.add_argument("--channel", default=config.CAN_CHANNEL,
                        help="Channel (e.g., can0, /dev/ttyACM0, PCAN_USBBUS1)")
    common(p_scan)

    p_sim = sub.add_parser("simulate", help="Run the scan against a simulated vehicle")
    p_sim.add_argument("--bitrate", type=int, default=500_000,
                       choices=[int(b) for b in BAUD_CANDIDATES], help="Vehicle bit rate")
    p_sim.add_argument("--ecu", type=parse_ecu, action="append",
                       help="Responder REQ[=MODE03_PAYLOAD_HEX] (repeatable), e.g. 7E0=0543012300000000")
    p_sim.add_argument("--silent", action="store_true", help="No vehicle on the bus")
    common(p_sim)

    sub.add_parser("ports", help="List available serial ports")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug or None, to_file=not args.no_log_file)

    if args.cmd == "scan":
        return action_scan(args)
    if args.cmd == "simulate":
        return action_simulate(args)
    if args.cmd == "ports":
        return list_ports()

    return 2


if __name__ == "__main__":
    sys.exit(main())
