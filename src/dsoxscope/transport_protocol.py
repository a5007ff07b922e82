"""Transport protocol interface for dsoxscope."""

from __future__ import annotations

import math
from typing import Protocol


class TransportError(Exception):
    """Raised when the transport cannot complete a request."""


class TransportTimeout(TransportError):
    """Raised when the instrument does not answer within the I/O timeout."""


class TransportProtocol(Protocol):
    """Protocol defining the request/response channel to the instrument.

    Every call blocks until the instrument replies or the transport times out.
    """

    #: True when binary responses must be fetched with ``write`` + ``read``
    #: instead of a single ``query``.
    supports_split_binary_read: bool

    def write(self, command: str) -> int:
        """Send a command.

        Args:
            command: ASCII command string

        Returns:
            0 on success, non-zero on transport error
        """
        ...

    def query(self, command: str) -> tuple[str | bytes, int]:
        """Send a query and read the response.

        Args:
            command: ASCII query string

        Returns:
            Tuple of (response, status) with status 0 on success
        """
        ...

    def read(self) -> bytes:
        """Read a raw (binary) response."""
        ...

    def opc(self) -> int:
        """Block until the instrument reports operation complete.

        Returns:
            0 on success, non-zero on transport error
        """
        ...


def as_text(response: str | bytes) -> str:
    """Return a response as stripped text."""
    if isinstance(response, bytes):
        response = response.decode("ascii", errors="replace")
    return response.strip()


def as_float(response: str | bytes) -> float:
    """Parse a numeric response, returning NaN when it is not a number."""
    try:
        return float(as_text(response))
    except ValueError:
        return math.nan
