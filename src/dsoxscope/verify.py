"""Set-then-verify protocol for instrument parameters.

Every configurable parameter is written with ``<fragment> <value>``, read back
with ``<fragment>?`` and compared against the value that was sent. The rule
used for the comparison depends on the parameter: enumerations must match
exactly, continuous quantities only within a tolerance because the instrument
snaps them to its own step sizes.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Protocol

from dsoxscope.outcome import Outcome
from dsoxscope.transport_protocol import TransportProtocol, as_float, as_text


class Criticality(enum.Enum):
    """How a read-back mismatch is reported."""

    SOFT = "soft"  # warning only
    HARD = "hard"  # call-level failure


class Tolerance(Protocol):
    def accepts(self, sent: str, read_back: str) -> bool: ...


@dataclass(frozen=True)
class ExactMatch:
    """Case-insensitive string equality."""

    def accepts(self, sent: str, read_back: str) -> bool:
        return sent.casefold() == read_back.casefold()


@dataclass(frozen=True)
class PrefixMatch:
    """The read-back is the short form of the sent keyword ('NORMal' -> 'NORM')."""

    def accepts(self, sent: str, read_back: str) -> bool:
        return bool(read_back) and sent.casefold().startswith(read_back.casefold())


@dataclass(frozen=True)
class NumericEqual:
    """Numeric equality after parsing both sides."""

    def accepts(self, sent: str, read_back: str) -> bool:
        return as_float(sent) == as_float(read_back)


@dataclass(frozen=True)
class RelativeTolerance:
    """|1 - actual / requested| must not exceed ``limit``."""

    limit: float = 5e-2

    def accepts(self, sent: str, read_back: str) -> bool:
        requested = as_float(sent)
        actual = as_float(read_back)
        if math.isnan(actual):
            return False
        if requested == 0:
            return actual == 0
        return abs(1 - actual / requested) <= self.limit


@dataclass(frozen=True)
class AbsoluteTolerance:
    """|actual - requested| must not exceed ``limit``."""

    limit: float = 1e-3

    def accepts(self, sent: str, read_back: str) -> bool:
        actual = as_float(read_back)
        if math.isnan(actual):
            return False
        return abs(as_float(sent) - actual) <= self.limit


@dataclass(frozen=True)
class RatioWindow:
    """requested / actual must lie within [low, high] (coarse instrument steps)."""

    low: float = 0.2
    high: float = 1.2

    def accepts(self, sent: str, read_back: str) -> bool:
        actual = as_float(read_back)
        if math.isnan(actual) or actual == 0:
            return False
        return self.low <= as_float(sent) / actual <= self.high


@dataclass(frozen=True)
class VerifiedSetResult:
    """Outcome of one set-then-verify cycle."""

    sent: str
    read_back: str
    within_tolerance: bool


def verified_set(
    transport: TransportProtocol,
    fragment: str,
    value: str,
    tolerance: Tolerance,
    criticality: Criticality,
    outcome: Outcome,
    name: str,
) -> VerifiedSetResult:
    """Set a parameter and verify it against the instrument read-back.

    Args:
        transport: Transport to the instrument
        fragment: Command fragment, e.g. ':CHANnel1:SCALe'
        value: Already formatted value to send
        tolerance: Comparison rule for the read-back
        criticality: Whether a mismatch is a warning or a failure
        outcome: Collects warnings and failures of the calling macro
        name: Parameter name used in messages

    Returns:
        VerifiedSetResult with the sent text and the read-back text
    """
    if transport.write(f"{fragment} {value}") != 0:
        outcome.fail(f"{name} parameter could not be sent")
        return VerifiedSetResult(sent=value, read_back="", within_tolerance=False)

    response, status = transport.query(f"{fragment}?")
    if status != 0:
        outcome.fail(f"{name} parameter could not be read back")
        return VerifiedSetResult(sent=value, read_back="", within_tolerance=False)

    read_back = as_text(response)
    within = tolerance.accepts(value, read_back)
    if not within:
        message = (
            f"{name} parameter could not be set correctly "
            f"(sent {value}, read back {read_back or '<empty>'})"
        )
        if criticality is Criticality.HARD:
            outcome.fail(message)
        else:
            outcome.warn(f"{message}. Check limits.")
    return VerifiedSetResult(sent=value, read_back=read_back, within_tolerance=within)
