"""Parameter translation for dsoxscope macros.

Macros accept loosely typed keyword parameters (strings, numbers, booleans,
comma-separated lists). Each macro declares a closed schema mapping parameter
names to parsers; ``parse_options`` runs every supplied value through its
parser and returns only the values that survived validation. Invalid values
are dropped with a warning instead of aborting the call.
"""

from __future__ import annotations

import math
import os
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from dsoxscope.outcome import Outcome

# Parser signature: (raw value, outcome) -> normalized value or None (absent)
Parser = Callable[[Any, Outcome], Any]

# Significant digits used when numbers are sent to the instrument
DEFAULT_DIGITS = 3

SWITCH_STATES = {
    "off": "0",
    "0": "0",
    "false": "0",
    "on": "1",
    "1": "1",
    "true": "1",
}

INPUT_COUPLINGS = {"ac": "AC", "dc": "DC"}

INPUT_UNITS = {"v": "VOLT", "volt": "VOLT", "a": "AMP", "amp": "AMP"}

ACQUISITION_MODES = {
    "sample": "NORM",
    "normal": "NORM",
    "norm": "NORM",
    "peakdetect": "PEAK",
    "peak": "PEAK",
    "average": "AVER",
    "aver": "AVER",
    "highres": "HRES",
    "hres": "HRES",
    "highresolution": "HRES",
}

TRIGGER_MODES = {
    "normal": "NORMal",
    "norm": "NORMal",
    "auto": "AUTO",
    "single": "SINGle",
}

# Edge trigger types map to the slope of the edge
TRIGGER_TYPES = {
    "risingedge": "POSitive",
    "rising": "POSitive",
    "fallingedge": "NEGative",
    "falling": "NEGative",
}

TRIGGER_SOURCES = {
    "ch1": "CHAN1",
    "1": "CHAN1",
    "ch2": "CHAN2",
    "2": "CHAN2",
    "ext": "EXT",
    "ac-line": "LINE",
    "line": "LINE",
}

TRIGGER_COUPLINGS = {
    "ac": "AC",
    "dc": "DC",
    "noisereject": "NREJect",
    "noiserej": "NREJect",
    "hfreject": "HFReject",
    "hfrej": "HFReject",
    "lfreject": "LFR",
    "lfrej": "LFR",
}

AUTOSCALE_MODES = {
    "hor": "horizontal",
    "horizontal": "horizontal",
    "vert": "vertical",
    "vertical": "vertical",
    "both": "both",
}

_CHANNEL_TOKEN = re.compile(r"^(?:ch(?:an(?:nel)?)?)?(\d+)$")


@dataclass(frozen=True, order=True)
class ChannelRef:
    """One physical input channel of the instrument."""

    ordinal: int

    @property
    def prefix(self) -> str:
        """Command prefix, e.g. ':CHANnel1'."""
        return f":CHANnel{self.ordinal}"

    @property
    def source(self) -> str:
        """Waveform source name, e.g. 'CHANnel1'."""
        return f"CHANnel{self.ordinal}"

    @property
    def measure_source(self) -> str:
        """Measurement source name, e.g. 'CHANNEL1'."""
        return f"CHANNEL{self.ordinal}"


@dataclass(frozen=True)
class FixedLevel:
    """Trigger level at a fixed voltage."""

    volts: float


@dataclass(frozen=True)
class AutoFiftyPercent:
    """Trigger level set by the instrument to 50 % of the signal."""


TriggerLevel = FixedLevel | AutoFiftyPercent


@dataclass(frozen=True)
class ZoomDisabled:
    """Zoom window switched off (main timebase only)."""


@dataclass(frozen=True)
class ZoomFactor:
    """Zoom window enabled with the given magnification (>= 2)."""

    factor: float


Zoom = ZoomDisabled | ZoomFactor


def token(value: Any) -> str:
    """Normalize a loosely typed scalar into a lower-case string token."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value).strip().lower()


def is_empty(value: Any) -> bool:
    """True for values that mean 'parameter not given'."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def parse_real(value: Any) -> float:
    """Parse a real number, returning NaN when the value is not numeric."""
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def format_number(value: float, digits: int = DEFAULT_DIGITS) -> str:
    """Format a number in exponent notation with a fixed number of significant digits.

    Formatting an already formatted (and re-parsed) value yields the same text.
    """
    return f"{value:.{digits - 1}e}"


def round_number(value: float, digits: int = DEFAULT_DIGITS) -> float:
    """Return the value the instrument actually receives after formatting."""
    return float(format_number(value, digits))


def parse_channels(
    value: Any, outcome: Outcome, available: Iterable[int] = (1, 2)
) -> tuple[ChannelRef, ...]:
    """Parse a channel list ('1, 2', [1, 2], 'ch1', 2, ...).

    Invalid tokens are dropped with a warning, empty and duplicate tokens are
    removed. The order of first appearance is kept.
    """
    allowed = tuple(available)
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, Iterable):
        items = list(value)
    else:
        items = [value]

    channels: list[ChannelRef] = []
    for item in items:
        text = re.sub(r"\s+", "", token(item))
        if not text:
            continue
        match = _CHANNEL_TOKEN.match(text)
        if match is None or int(match[1]) not in allowed:
            outcome.warn(
                f"invalid channel '{item}' (allowed are "
                f"{allowed[0]} .. {allowed[-1]}) --> ignore and continue"
            )
            continue
        channel = ChannelRef(int(match[1]))
        if channel not in channels:
            channels.append(channel)
    return tuple(channels)


def channels(available: Iterable[int] = (1, 2)) -> Parser:
    allowed = tuple(available)
    return lambda value, outcome: parse_channels(value, outcome, allowed)


def choice(name: str, aliases: Mapping[str, str]) -> Parser:
    """Parser for an enumerated parameter with case-insensitive aliases."""

    def parse(value: Any, outcome: Outcome) -> str | None:
        key = token(value)
        if key in aliases:
            return aliases[key]
        outcome.warn(f"{name} parameter '{value}' is unknown --> ignore and continue")
        return None

    return parse


def switch(name: str) -> Parser:
    """Parser for on/off parameters, normalized to '1' / '0'."""
    return choice(name, SWITCH_STATES)


def real(name: str, magnitude: bool = False) -> Parser:
    """Parser for a finite real number; non-finite input is dropped."""

    def parse(value: Any, outcome: Outcome) -> float | None:
        number = parse_real(value)
        if not math.isfinite(number):
            outcome.warn(f"{name} parameter '{value}' is invalid --> ignore and continue")
            return None
        return abs(number) if magnitude else number

    return parse


def bounded(name: str, low: float, high: float) -> Parser:
    """Parser for a number restricted to [low, high]; out-of-range values are rejected."""

    def parse(value: Any, outcome: Outcome) -> float | None:
        number = parse_real(value)
        if not low <= number <= high:
            outcome.warn(
                f"{name} parameter '{value}' is out of range "
                f"({low:g} .. {high:g}) --> ignore and continue"
            )
            return None
        return number

    return parse


def parse_input_coupling(value: Any, outcome: Outcome) -> str | None:
    if token(value) == "gnd":
        outcome.warn("coupling 'GND' not supported by this scope --> ignore and continue")
        return None
    return choice("coupling", INPUT_COUPLINGS)(value, outcome)


def parse_trigger_level(value: Any, outcome: Outcome) -> TriggerLevel:
    """NaN (or any non-finite value) requests the automatic 50 % level."""
    level = parse_real(value)
    if not math.isfinite(level):
        return AutoFiftyPercent()
    return FixedLevel(level)


def parse_zoom_factor(value: Any, outcome: Outcome) -> Zoom:
    """Factors below 2 cannot be displayed; NaN or <= 1 disables the zoom window."""
    factor = parse_real(value)
    if not math.isfinite(factor) or factor <= 1:
        return ZoomDisabled()
    if factor < 2:
        outcome.info(f"zoom factor {factor:g} coerced to 2")
        factor = 2.0
    return ZoomFactor(factor)


def parse_zoom_position(value: Any, outcome: Outcome) -> float:
    position = parse_real(value)
    if not math.isfinite(position):
        return 0.0  # center
    return position


def parse_file_name(value: Any, outcome: Outcome) -> str | None:
    """Accept a str or path-like file name; anything else is dropped with a warning."""
    if isinstance(value, (str, os.PathLike)):
        return os.fspath(value)
    outcome.warn(f"fileName parameter '{value}' is invalid --> ignore and continue")
    return None


def option_key(name: str) -> str:
    """Match 'v_div', 'vDiv' and 'vdiv' to the same parameter."""
    return name.replace("_", "").lower()


def parse_options(
    operation: str,
    params: Mapping[str, Any],
    schema: Mapping[str, Parser],
    outcome: Outcome,
) -> dict[str, Any]:
    """Validate keyword parameters against a closed schema.

    Args:
        operation: Name of the calling macro (used in warnings)
        params: Raw keyword parameters as given by the caller
        schema: Parameter name -> parser
        outcome: Collects warnings for dropped parameters

    Returns:
        Mapping of schema name -> normalized value for every parameter that
        was given and passed validation
    """
    lookup = {option_key(name): name for name in schema}
    parsed: dict[str, Any] = {}
    for name, value in params.items():
        key = lookup.get(option_key(name))
        if key is None:
            if not is_empty(value):
                outcome.warn(f"{operation} parameter '{name}' is unknown --> ignore")
            continue
        if is_empty(value):
            continue
        result = schema[key](value, outcome)
        if result is not None:
            parsed[key] = result
    return parsed
