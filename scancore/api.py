#!/usr/bin/env python3
# File: scancore/api.py
# FastAPI wrapper around the scan engine (one scan at a time)

from __future__ import annotations

import argparse
import logging
import threading
from typing import Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from serial.tools.list_ports import comports

from scancore import __version__, config
from scancore.clock import Clock, MonotonicClock
from scancore.config import ScanSettings
from scancore.core import ScanReport
from scancore.logger import setup_logging
from scancore.orchestrator import ScanOrchestrator, ScanPhase
from scancore.transport import BusTransport, CanBusTransport

logger = logging.getLogger(__name__)


# ---- scan service -------------------------------------------------------------
class ScanBusy(Exception):
    """Another scan holds the bus"""


def _default_transport() -> BusTransport:
    return CanBusTransport(interface=config.CAN_INTERFACE, channel=config.CAN_CHANNEL)


class ScanService:
    """Serialises scans: the bus controller is one exclusive resource."""

    def __init__(self, transport_factory: Callable[[], BusTransport] = _default_transport,
                 settings: Optional[ScanSettings] = None,
                 clock_factory: Callable[[], Clock] = MonotonicClock):
        self.transport_factory = transport_factory
        self.settings = settings
        self.clock_factory = clock_factory
        self._lock = threading.Lock()
        self._running: Optional[ScanOrchestrator] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def phase(self) -> ScanPhase:
        running = self._running
        return running.phase if running is not None else ScanPhase.IDLE

    def run(self) -> ScanReport:
        if not self._lock.acquire(blocking=False):
            raise ScanBusy()
        try:
            settings = self.settings or config.load_settings()
            with self.transport_factory() as transport:
                self._running = ScanOrchestrator(transport, settings, clock=self.clock_factory())
                return self._running.scan()
        finally:
            self._running = None
            self._lock.release()


# ---- models ------------------------------------------------------------------
class DtcModel(BaseModel):
    code: str
    category: str
    value: int
    system: str
    ecu_id: int
    pending: bool = False

class TrafficModel(BaseModel):
    frame_count: int
    unique_ids: List[str]

class ScanReportModel(BaseModel):
    status: str
    vehicle_detected: bool
    elapsed_s: float = Field(..., ge=0)
    bitrate: Optional[int] = None
    active_ecus: List[str]
    codes: List[DtcModel]
    traffic: Optional[TrafficModel] = None

class PhaseResponse(BaseModel):
    phase: str
    busy: bool

class PortInfo(BaseModel):
    device: str
    desc: Optional[str] = None


# ---- FastAPI app --------------------------------------------------------------
def create_app(service: Optional[ScanService] = None) -> FastAPI:
    service = service or ScanService()
    app = FastAPI(title="scancore Local API", version=__version__)
    app.state.scan_service = service

    # kiosk UI on localhost calls this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root() -> Dict[str, str]:
        return {"service": "scancore-api", "hint": "see /health and /docs"}

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "interface": config.CAN_INTERFACE, "channel": config.CAN_CHANNEL}

    @app.get("/ports", response_model=List[PortInfo])
    def ports():
        return [PortInfo(device=p.device, desc=p.description) for p in comports()]

    @app.get("/scan/phase", response_model=PhaseResponse)
    def scan_phase():
        phase = service.phase
        return PhaseResponse(phase=phase.value, busy=service.busy)

    # plain def: FastAPI runs it in the threadpool, the scan blocks for up to 45 s
    @app.post("/scan", response_model=ScanReportModel)
    def scan():
        try:
            report = service.run()
        except ScanBusy:
            raise HTTPException(409, "scan already in progress")
        return ScanReportModel(**report.to_dict())

    return app


app = create_app()


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="scancore local API server")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8000)
    args = ap.parse_args(argv)

    setup_logging()
    logger.info("Starting scancore API on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
