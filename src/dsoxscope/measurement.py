"""Measurement requests for dsoxscope.

Maps semantic measurement names ('pk-pk', 'cycrms', ...) to the instrument's
``:MEASure`` queries, enforces the number of source channels per measurement
and attaches the device-reported error state to each result.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from dsoxscope import device_state
from dsoxscope.options import ChannelRef, is_empty, parse_channels, token
from dsoxscope.outcome import FAILED, OK, Outcome
from dsoxscope.transport_protocol import (
    TransportError,
    TransportProtocol,
    as_float,
    as_text,
)

# The instrument reports this (or larger) when a measurement has no valid result
INVALID_VALUE = 9e30

# name -> (measurement keyword, optional option placed before the source)
MEASUREMENT_ALIASES: dict[str, tuple[str, str | None]] = {
    "frequency": ("frequency", None),
    "freq": ("frequency", None),
    "period": ("period", None),
    "peri": ("period", None),
    "per": ("period", None),
    "mean": ("vaverage", "cycle"),
    "cycrms": ("vrms", "cycle"),
    "crms": ("vrms", "cycle"),
    "rms": ("vrms", None),
    "pk-pk": ("vpp", None),
    "pkpk": ("vpp", None),
    "pk2pk": ("vpp", None),
    "peak": ("vpp", None),
    "maximum": ("vmax", None),
    "max": ("vmax", None),
    "minimum": ("vmin", None),
    "min": ("vmin", None),
    "high": ("vtop", None),
    "top": ("vtop", None),
    "low": ("vbase", None),
    "base": ("vbase", None),
    "amplitude": ("vamplitude", None),
    "amp": ("vamplitude", None),
    "overshoot": ("overshoot", None),
    "over": ("overshoot", None),
    "povershoot": ("overshoot", None),
    "novershoot": ("overshoot", None),
    "preshoot": ("preshoot", None),
    "risetime": ("risetime", None),
    "rise": ("risetime", None),
    "falltime": ("falltime", None),
    "fall": ("falltime", None),
    "poswidth": ("pwidth", None),
    "pwidth": ("pwidth", None),
    "negwidth": ("nwidth", None),
    "nwidth": ("nwidth", None),
    "dutycycle": ("dutycycle", None),
    "dutycyc": ("dutycycle", None),
    "dcycle": ("dutycycle", None),
    "dcyc": ("dutycycle", None),
    "phase": ("phase", None),
    "delay": ("delay", None),
}

# The instrument only measures overshoot at the nearest edge
_COERCED_ALIASES = {"povershoot", "novershoot"}

TWO_CHANNEL_MEASUREMENTS = {"phase", "delay"}

VOLTAGE_MEASUREMENTS = {
    "vmin",
    "vmax",
    "vaverage",
    "vrms",
    "vpp",
    "vamplitude",
    "vbase",
    "vtop",
}

FIXED_UNITS = {
    "frequency": "Hz",
    "period": "s",
    "risetime": "s",
    "falltime": "s",
    "pwidth": "s",
    "nwidth": "s",
    "delay": "s",
    "dutycycle": "%",
    "overshoot": "%",
    "preshoot": "%",
    "phase": "deg",
}

CHANNEL_UNITS = {"VOLT": "V", "AMP": "A"}


@dataclass
class MeasurementResult:
    """Result of one measurement request.

    ``error_id`` stays None until the instrument error state has been read;
    0 means the instrument reported no error.
    """

    status: int = OK
    value: float = math.nan
    unit: str = ""
    channels: tuple[int, ...] = ()
    parameter: str = ""
    overload: bool | None = None
    underload: bool | None = None
    error_id: int | None = None
    error_message: str = ""
    warnings: list[str] = field(default_factory=list)


def _finish(result: MeasurementResult, outcome: Outcome) -> MeasurementResult:
    result.status = outcome.status
    result.warnings = outcome.warnings
    return result


def resolve_parameter(name: Any) -> tuple[str, str | None] | None:
    """Return (keyword, option) for a measurement name, or None when unknown."""
    return MEASUREMENT_ALIASES.get(token(name))


def run_measurement(
    transport: TransportProtocol,
    channel: Any = None,
    parameter: Any = None,
    available_channels: Iterable[int] = (1, 2),
) -> MeasurementResult:
    """Request one measurement from the instrument.

    Args:
        transport: Transport to the instrument
        channel: Source channel(s), e.g. 1, '1, 2' or [1, 2]
        parameter: Measurement name, e.g. 'frequency', 'pk-pk', 'phase'
        available_channels: Channel ordinals of the instrument

    Returns:
        MeasurementResult; ``status`` is FAILED when no value was obtained
    """
    outcome = Outcome("runMeasurement")
    result = MeasurementResult()
    allowed = tuple(available_channels)

    if is_empty(parameter):
        outcome.fail(
            "no measurement parameter given, supported are "
            + ", ".join(sorted(MEASUREMENT_ALIASES))
        )
        return _finish(result, outcome)
    resolved = resolve_parameter(parameter)
    if resolved is None:
        outcome.fail(f"measurement type '{parameter}' is unknown --> abort function")
        return _finish(result, outcome)
    keyword, option = resolved
    if token(parameter) in _COERCED_ALIASES:
        outcome.warn("coerce overshoot measurement to nearest edge --> coerce and continue")

    sources: tuple[ChannelRef, ...] = ()
    if not is_empty(channel):
        sources = parse_channels(channel, outcome, allowed)

    if keyword in TWO_CHANNEL_MEASUREMENTS:
        if len(sources) != 2:
            outcome.warn(
                "two source channels have to be specified for phase and delay "
                "measurements --> coerce to channels 1, 2 and continue"
            )
            sources = (ChannelRef(1), ChannelRef(2))
    elif len(sources) != 1:
        outcome.fail("one source channel has to be specified --> skip and exit")
        return _finish(result, outcome)

    result.parameter = keyword
    result.channels = tuple(source.ordinal for source in sources)
    # Phase and delay are configured through their first source only
    source = sources[0].measure_source

    # Clear status so the error check afterwards only reflects this request
    transport.write("*CLS")

    if not device_state.measurement_allowed(transport):
        outcome.fail(
            "either acquisition was not stopped or trigger sweep is not set "
            "to 'AUTO' --> measurement canceled"
        )
        return _finish(result, outcome)

    argument = f"{option},{source}" if option else source
    try:
        response, status = transport.query(f":MEASure:{keyword.upper()}? {argument}")
    except TransportError:
        outcome.warn("unterminated query in 'runMeasurement'")
        transport.opc()
        outcome.fail("measurement request aborted")
        result.error_message = "measurement request aborted"
        return _finish(result, outcome)
    if status != 0:
        outcome.fail("measurement query failed")
        return _finish(result, outcome)

    value = as_float(response)
    result.value = math.nan if value >= INVALID_VALUE else value

    if keyword in VOLTAGE_MEASUREMENTS:
        unit_response, _ = transport.query(f":{source}:UNITs?")
        unit = CHANNEL_UNITS.get(as_text(unit_response).upper())
        if unit is None:
            outcome.fail(f"unknown unit '{as_text(unit_response)}'")
        else:
            result.unit = unit
    else:
        result.unit = FIXED_UNITS[keyword]

    esr_response, status = transport.query("*ESR?")
    if status != 0:
        outcome.fail("event status register could not be read")
        result.value = math.nan
        return _finish(result, outcome)

    if as_float(esr_response) > 0:
        # Only one entry is expected because the status was cleared before
        error_response, _ = transport.query(":SYSTem:ERRor?")
        entry = device_state.parse_error_entry(error_response)
        result.error_id = entry.code
        result.error_message = entry.message
    else:
        result.error_id = 0
        result.error_message = "okay"

    return _finish(result, outcome)


def measurement_failed(result: MeasurementResult) -> bool:
    """True unless the instrument confirmed the measurement without error."""
    return result.status == FAILED or result.error_id != 0
