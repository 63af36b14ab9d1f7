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
Bus Transport Module

Thin boundary over the physical CAN controller. Three operations, each
bounded by an explicit timeout:

- reconfigure(bitrate): stop, reinstall with new timing, start
- send(frame, timeout)
- receive(timeout) -> Frame | None

No retries happen here; retry policy (there is none) belongs to callers.
"""

import logging
import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import can

from scancore import config
from scancore.core import BAUD_CANDIDATES, Frame

logger = logging.getLogger(__name__)

LINK_COMMAND_TIMEOUT = 5.0
LINK_RESTART_MS = 100


class BusError(Exception):
    """Base exception for bus controller errors"""
    pass


class BusConfigurationError(BusError):
    """Controller could not be stopped, reinstalled or started"""
    pass


class BusTransmitError(BusError):
    """Frame could not be queued for transmission"""
    pass


class BusTransport(ABC):
    """Abstract base class for CAN bus transports"""

    @abstractmethod
    def reconfigure(self, bitrate: int) -> None:
        """
        Stop any running controller, reinstall at ``bitrate`` and restart.
        Raises BusError; on failure the controller is left not running.
        """
        pass

    @abstractmethod
    def send(self, frame: Frame, timeout: float) -> None:
        """Transmit one frame. Raises BusError; never blocks past timeout."""
        pass

    @abstractmethod
    def receive(self, timeout: float) -> Optional[Frame]:
        """Next frame, or None once timeout elapses."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass

    def shutdown(self) -> None:
        """Release the controller"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()


class CanBusTransport(BusTransport):
    """
    python-can binding (SocketCAN, slcan, PCAN, Vector, ...)

    Most python-can backends take the bit rate when the bus is opened.
    SocketCAN does not: the timing belongs to the kernel network link, so for
    that interface the link is taken down, retimed and brought back up with
    ``ip link`` before the socket is reopened.
    """

    def __init__(self, interface: str = "socketcan", channel: str = "can0",
                 link_command: Optional[Sequence[str]] = None, **bus_kwargs):
        self.interface = interface
        self.channel = channel
        self.link_command = tuple(link_command or shlex.split(config.CAN_IP_COMMAND))
        self.bus_kwargs = bus_kwargs
        self.bitrate: Optional[int] = None
        self._bus: Optional[can.BusABC] = None

    @property
    def is_running(self) -> bool:
        return self._bus is not None

    @property
    def manages_link(self) -> bool:
        return self.interface == "socketcan"

    def _stop(self) -> None:
        bus, self._bus = self._bus, None
        self.bitrate = None
        if bus is None:
            return
        try:
            bus.shutdown()
        except (can.CanError, OSError) as e:
            # the handle is dropped either way
            logger.warning(f"Controller shutdown reported: {e}")

    def _ip_link(self, *args: str) -> None:
        cmd = [*self.link_command, "link", "set", self.channel, *args]
        try:
            res = subprocess.run(cmd, capture_output=True, text=True, timeout=LINK_COMMAND_TIMEOUT)
        except (OSError, subprocess.SubprocessError) as e:
            raise BusConfigurationError(f"{' '.join(cmd)}: {e}") from e
        if res.returncode:
            raise BusConfigurationError(f"{' '.join(cmd)}: {res.stderr.strip() or 'ip link error'}")

    def _set_link_bitrate(self, bitrate: int) -> None:
        self._ip_link("down")
        self._ip_link("type", "can", "bitrate", str(bitrate), "restart-ms", str(LINK_RESTART_MS))
        self._ip_link("up")
        logger.debug(f"Link {self.channel} retimed to {bitrate} bps")

    def reconfigure(self, bitrate: int) -> None:
        self._stop()
        if bitrate not in BAUD_CANDIDATES:
            raise BusConfigurationError(f"Unsupported bit rate: {bitrate}")

        kwargs = dict(self.bus_kwargs)
        try:
            if self.manages_link:
                self._set_link_bitrate(bitrate)
            else:
                kwargs["bitrate"] = bitrate
            bus = can.Bus(interface=self.interface, channel=self.channel, **kwargs)
        except BusConfigurationError as e:
            logger.error(f"Failed to retime {self.channel} to {bitrate} bps: {e}")
            raise
        except (can.CanError, OSError, ValueError) as e:
            logger.error(f"Failed to start {self.interface}:{self.channel} at {bitrate} bps: {e}")
            raise BusConfigurationError(str(e)) from e

        self._bus = bus
        self.bitrate = bitrate
        logger.debug(f"Controller running on {self.interface}:{self.channel} at {bitrate} bps")

    def send(self, frame: Frame, timeout: float) -> None:
        if self._bus is None:
            raise BusTransmitError("Controller not running")
        msg = can.Message(
            arbitration_id=frame.arbitration_id,
            data=frame.data,
            is_extended_id=frame.is_extended,
        )
        try:
            self._bus.send(msg, timeout=timeout)
        except can.CanError as e:
            raise BusTransmitError(str(e)) from e

    def receive(self, timeout: float) -> Optional[Frame]:
        if self._bus is None:
            return None
        try:
            msg = self._bus.recv(timeout=timeout)
        except can.CanError as e:
            # bus-off raises at once; wait out the slice like a quiet bus
            logger.debug(f"Receive error treated as timeout: {e}")
            time.sleep(max(0.0, timeout))
            return None
        if msg is None or msg.is_error_frame or msg.is_remote_frame:
            return None
        return Frame(msg.arbitration_id, bytes(msg.data[:8]), msg.is_extended_id)

    def shutdown(self) -> None:
        self._stop()
        logger.info("CAN controller released")
