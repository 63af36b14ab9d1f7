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
Log setup for scancore entry points (CLI, API).

Every record carries a ``scan_id``: the short id of the scan it was emitted
under, or ``-`` outside a scan. Interleaved API scans stay separable in the
daily log file that way.
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

import colorlog

from scancore.config import LOG_DIR, DEBUG_MODE

NO_SCAN = "-"
LOG_FILE = "scancore.log"
LOG_RETENTION_DAYS = 7

_scan_id: ContextVar[str] = ContextVar("scan_id", default=NO_SCAN)
_INITIALIZED = False


def current_scan_id() -> str:
    return _scan_id.get()


@contextmanager
def scan_context(scan_id: Optional[str] = None) -> Iterator[str]:
    """Tag records logged inside the block with ``scan_id`` (random when omitted)."""
    token = _scan_id.set(scan_id or uuid.uuid4().hex[:8])
    try:
        yield _scan_id.get()
    finally:
        _scan_id.reset(token)


class ScanContextFilter(logging.Filter):
    """Stamps ``record.scan_id``; never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.scan_id = _scan_id.get()
        return True


def _console_handler(debug: bool) -> logging.Handler:
    handler = colorlog.StreamHandler()
    handler.setLevel(logging.DEBUG if debug else logging.INFO)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s %(levelname)-7s [%(scan_id)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        log_colors={
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        },
    ))
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir = Path(log_dir).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(log_dir / LOG_FILE),
        when="midnight",
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
        delay=True,
    )
    # file keeps full detail whatever the console shows
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-7s [%(scan_id)s] %(name)s %(filename)s:%(lineno)d %(message)s",
    ))
    return handler


def setup_logging(debug: Optional[bool] = None, log_dir: Optional[Path] = None,
                  to_file: bool = True) -> None:
    """Configure the root logger once; later calls are no-ops."""
    global _INITIALIZED
    if _INITIALIZED:
        return

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    handlers = {"console": _console_handler(DEBUG_MODE if debug is None else debug)}
    if to_file:
        handlers["file"] = _file_handler(log_dir or LOG_DIR)

    context = ScanContextFilter()
    for name, handler in handlers.items():
        handler.set_name(name)
        handler.addFilter(context)
        root.addHandler(handler)

    _INITIALIZED = True
