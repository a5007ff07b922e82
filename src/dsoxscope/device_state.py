"""Read-only instrument state queries.

Every function queries the instrument on each call; nothing is cached because
the state can change between two reads.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass

from dsoxscope.transport_protocol import (
    TransportError,
    TransportProtocol,
    as_float,
    as_text,
)

logger = logging.getLogger(__name__)

# Bit 3 of the operation status condition register is the RUN bit
RUN_BIT = 1 << 3

# Upper bound of error queue reads in one drain
MAX_ERROR_READS = 30


class AcquisitionState(enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = ""


class TriggerState(enum.Enum):
    TRIGGERED = "triggered"
    WAIT_FOR_TRIGGER = "waitfortrigger"
    UNKNOWN = ""


@dataclass(frozen=True)
class DeviceError:
    """One entry of the instrument error queue."""

    code: int
    message: str


def acquisition_state(transport: TransportProtocol) -> AcquisitionState:
    """Read the RUN bit of the operation status condition register."""
    response, status = transport.query(":OPERegister:CONDition?")
    if status != 0:
        logger.warning("visa error, couldn't read acquisition state")
        return AcquisitionState.UNKNOWN
    register = as_float(response)
    if math.isnan(register):
        return AcquisitionState.UNKNOWN
    if int(register) & RUN_BIT:
        return AcquisitionState.RUNNING
    return AcquisitionState.STOPPED


def trigger_state(transport: TransportProtocol) -> TriggerState:
    """Read (and thereby clear) the trigger and arm event registers."""
    triggered, status_triggered = transport.query(":TER?")
    armed, status_armed = transport.query(":AER?")
    if status_triggered != 0 or status_armed != 0:
        logger.warning("visa error, couldn't read trigger state")
        return TriggerState.UNKNOWN
    if as_float(triggered) == 1:
        return TriggerState.TRIGGERED
    if as_float(armed) == 1:
        return TriggerState.WAIT_FOR_TRIGGER
    return TriggerState.UNKNOWN


def sweep_is_auto(transport: TransportProtocol) -> bool:
    """True when the trigger sweep mode is AUTO (free running)."""
    response, status = transport.query(":TRIGger:SWEep?")
    return status == 0 and as_text(response).upper() == "AUTO"


def measurement_allowed(transport: TransportProtocol) -> bool:
    """True when a measurement query will be answered without blocking.

    That is the case when the acquisition is stopped or the trigger sweeps
    freely; a running acquisition waiting for a trigger may never answer.
    """
    stopped = acquisition_state(transport) is AcquisitionState.STOPPED
    auto = sweep_is_auto(transport)
    return stopped or auto


def data_available(transport: TransportProtocol) -> bool:
    """True when waveform data can be downloaded."""
    if not measurement_allowed(transport):
        logger.warning(
            "either acquisition was not stopped or trigger sweep is not set to 'AUTO'"
        )
        return False
    try:
        response, status = transport.query(":WAVeform:POINts?")
    except TransportError:
        logger.warning("unterminated query ':WAVeform:POINts?'")
        transport.opc()
        return False
    points = as_float(response) if status == 0 else math.nan
    if not points > 0:
        logger.warning("no waveform data available")
        return False
    return True


def parse_error_entry(response: str | bytes) -> DeviceError:
    """Parse an error queue entry such as '-113,"Undefined header"'."""
    code_text, _, message = as_text(response).partition(",")
    code = as_float(code_text)
    return DeviceError(
        code=int(code) if math.isfinite(code) else -1,
        message=message.strip().strip('"'),
    )


def drain_error_queue(
    transport: TransportProtocol, limit: int = MAX_ERROR_READS
) -> list[DeviceError]:
    """Read the error queue until it reports 'no error' or ``limit`` reads were made.

    Returns:
        The pending errors in the order they were reported
    """
    errors: list[DeviceError] = []
    for _ in range(limit):
        response, status = transport.query(":SYSTem:ERRor?")
        if status != 0:
            logger.warning("visa error, couldn't read error buffer")
            break
        entry = parse_error_entry(response)
        if entry.code == 0:
            break
        errors.append(entry)
    else:
        logger.warning("error queue still not empty after %d reads", limit)
    return errors
