"""VISA transport for dsoxscope."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pyvisa
from pyvisa.constants import StatusCode

from dsoxscope.transport_protocol import TransportTimeout

if TYPE_CHECKING:
    from pyvisa.resources import MessageBasedResource

logger = logging.getLogger(__name__)

# Binary transfers of full screenshots take a few seconds over USB
DEFAULT_TIMEOUT_MS = 10000


class VisaTransport:
    """Transport to a Keysight DSOX1000 using SCPI over VISA."""

    supports_split_binary_read = True

    @classmethod
    def auto_connect(cls, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> VisaTransport:
        """Find first Keysight DSOX1000 on VISA bus and return connected instance.

        Raises:
            ConnectionError: If no DSOX1000 oscilloscope is found.
        """
        rm = pyvisa.ResourceManager()
        for resource in rm.list_resources():
            try:
                instr: MessageBasedResource = rm.open_resource(resource)  # type: ignore[assignment]
            except pyvisa.errors.VisaIOError as e:
                logger.debug("Skipping %s: %s", resource, e)
                continue
            try:
                idn = instr.query("*IDN?")
            except pyvisa.errors.VisaIOError as e:
                logger.debug("No identification from %s: %s", resource, e)
                instr.close()
                continue
            if "KEYSIGHT" in idn.upper() and "DSO-X 1" in idn.upper():
                logger.info("Found %s at %s", idn.strip(), resource)
                instr.timeout = timeout_ms
                return cls(resource, timeout_ms=timeout_ms, instrument=instr)
            instr.close()
        raise ConnectionError("No Keysight DSOX1000 oscilloscope found")

    def __init__(
        self,
        resource: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        instrument: MessageBasedResource | None = None,
    ) -> None:
        """Initialize with a VISA resource string.

        Args:
            resource: VISA resource string (e.g., "USB0::0x2A8D::...::INSTR")
            timeout_ms: I/O timeout in milliseconds
            instrument: Already opened instrument (used for testing)
        """
        self._resource = resource
        self._timeout_ms = timeout_ms
        self._instrument = instrument

    @property
    def connected(self) -> bool:
        return self._instrument is not None

    def connect(self) -> None:
        """Connect to the oscilloscope."""
        if self._instrument is None:
            rm = pyvisa.ResourceManager()
            self._instrument = rm.open_resource(self._resource)  # type: ignore[assignment]
            self._instrument.timeout = self._timeout_ms

    def disconnect(self) -> None:
        """Disconnect from the oscilloscope."""
        if self._instrument is not None:
            self._instrument.close()
            self._instrument = None

    def _require_instrument(self) -> MessageBasedResource:
        if self._instrument is None:
            raise RuntimeError("Not connected to oscilloscope")
        return self._instrument

    def _handle_error(self, command: str, error: pyvisa.errors.VisaIOError) -> int:
        if error.error_code == StatusCode.error_timeout:
            raise TransportTimeout(f"Timeout on '{command}'") from error
        logger.error("VISA error on '%s': %s", command, error)
        return -1

    def write(self, command: str) -> int:
        instrument = self._require_instrument()
        logger.debug("write %s", command)
        try:
            instrument.write(command)
        except pyvisa.errors.VisaIOError as e:
            return self._handle_error(command, e)
        return 0

    def query(self, command: str) -> tuple[str | bytes, int]:
        instrument = self._require_instrument()
        try:
            response = instrument.query(command)
        except pyvisa.errors.VisaIOError as e:
            return "", self._handle_error(command, e)
        logger.debug("query %s -> %s", command, response.strip())
        return response, 0

    def read(self) -> bytes:
        instrument = self._require_instrument()
        try:
            data = instrument.read_raw()
        except pyvisa.errors.VisaIOError as e:
            self._handle_error("read", e)
            return b""
        logger.debug("read %d bytes", len(data))
        return data

    def opc(self) -> int:
        """Wait for pending operations via ``*OPC?``."""
        response, status = self.query("*OPC?")
        if status != 0:
            return status
        return 0 if response.strip() == "1" else -1
