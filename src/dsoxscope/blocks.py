"""Binary block decoding for waveform and screenshot transfers.

The instrument answers binary queries with a definite-length block::

    #8 00001000 <1000 payload bytes>

a two byte marker, eight ASCII digits with the payload byte count and the
raw payload.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import numpy as np

from dsoxscope.transport_protocol import as_float, as_text

logger = logging.getLogger(__name__)

# '#8' marker plus eight digits
HEADER_WIDTH = 10
MARKER_WIDTH = 2


class BlockCheck(enum.Enum):
    OK = "ok"
    MISSING_HEADER = "missing header"
    MISSING_DATA = "missing data"
    TOO_MUCH_DATA = "too much data"


@dataclass(frozen=True)
class BinaryBlock:
    """A decoded binary block.

    ``payload`` always holds every byte received after the header, also when
    the length does not match the declared byte count.
    """

    payload: bytes
    declared_size: int | None
    check: BlockCheck

    @property
    def valid(self) -> bool:
        return self.check is BlockCheck.OK

    @property
    def has_header(self) -> bool:
        return self.check is not BlockCheck.MISSING_HEADER


def decode_block(raw: bytes, header_width: int = HEADER_WIDTH) -> BinaryBlock:
    """Split a binary block into header and payload and check the byte count.

    Args:
        raw: Bytes as received from the instrument
        header_width: Marker plus byte count digits

    Returns:
        BinaryBlock; a missing or unreadable header yields an empty payload
    """
    raw = bytes(raw)
    if len(raw) < header_width or not raw.startswith(b"#"):
        logger.error("binary block without header (%d bytes received)", len(raw))
        return BinaryBlock(payload=b"", declared_size=None, check=BlockCheck.MISSING_HEADER)

    digits = raw[MARKER_WIDTH:header_width]
    if not digits.isdigit():
        logger.error("binary block header %r has no byte count", raw[:header_width])
        return BinaryBlock(payload=b"", declared_size=None, check=BlockCheck.MISSING_HEADER)

    declared = int(digits)
    payload = raw[header_width:]
    if len(payload) < declared:
        logger.warning("binary block missing data (%d of %d bytes)", len(payload), declared)
        check = BlockCheck.MISSING_DATA
    elif len(payload) > declared:
        logger.warning("binary block too much data (%d of %d bytes)", len(payload), declared)
        check = BlockCheck.TOO_MUCH_DATA
    else:
        check = BlockCheck.OK
    return BinaryBlock(payload=payload, declared_size=declared, check=check)


@dataclass(frozen=True)
class Preamble:
    """Waveform preamble as reported by ``:WAVeform:PREamble?``.

    Volts are reconstructed as ``(raw - y_reference) * y_increment + y_origin``
    and time as ``index * x_increment + x_origin``.
    """

    format: int
    type: int
    points: int
    count: int
    x_increment: float
    x_origin: float
    x_reference: float
    y_increment: float
    y_origin: float
    y_reference: float

    @classmethod
    def from_response(cls, response: str | bytes) -> Preamble:
        """Parse the ten comma-separated preamble fields.

        Raises:
            ValueError: If the response does not hold ten numeric fields
        """
        fields = [as_float(item) for item in as_text(response).split(",")]
        if len(fields) != 10 or any(np.isnan(fields)):
            raise ValueError(f"Invalid waveform preamble: {as_text(response)!r}")
        return cls(
            format=int(fields[0]),
            type=int(fields[1]),
            points=int(fields[2]),
            count=int(fields[3]),
            x_increment=fields[4],
            x_origin=fields[5],
            x_reference=fields[6],
            y_increment=fields[7],
            y_origin=fields[8],
            y_reference=fields[9],
        )


def decode_samples(payload: bytes, preamble: Preamble) -> np.ndarray:
    """Convert signed byte samples into physical values."""
    raw = np.frombuffer(payload, dtype=np.int8).astype(np.float64)
    return (raw - preamble.y_reference) * preamble.y_increment + preamble.y_origin
