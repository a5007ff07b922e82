"""Vertical and horizontal autoscaling for dsoxscope.

Vertical scaling measures the signal extremes per channel and adapts scale
and offset until no overload is left. Horizontal scaling measures the signal
frequency on the trigger source and derives the timebase from the number of
signal periods that should be visible.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dsoxscope import device_state
from dsoxscope.measurement import INVALID_VALUE, MeasurementResult, measurement_failed
from dsoxscope.options import ChannelRef
from dsoxscope.outcome import Outcome
from dsoxscope.transport_protocol import TransportError, as_float, as_text

if TYPE_CHECKING:
    from dsoxscope.keysight_dsox1000 import KeysightDSOX1000

# Signal periods visible after horizontal scaling (sensible range 2 .. 50)
DEFAULT_SIGNAL_PERIODS = 5.0
# Ratio of the display range used by the signal (sensible range 0.5 .. 0.9)
DEFAULT_VERTICAL_SCALING_FACTOR = 0.8

MAX_ITERATIONS = 8
# Scaling factor applied while the channel is overloaded (zoom out fast)
OVERLOAD_SCALING_FACTOR = 0.3
# The display shows +/- 4 divisions vertically and 10 divisions horizontally
VERTICAL_DIVISIONS = 8
HORIZONTAL_DIVISIONS = 10
# The ADC covers +/- 5 divisions around the offset
ADC_HALF_RANGE_DIVISIONS = 5


@dataclass
class AutoscaleSettings:
    """Knobs kept between autoscale calls."""

    signal_periods: float = DEFAULT_SIGNAL_PERIODS
    vertical_scaling_factor: float = DEFAULT_VERTICAL_SCALING_FACTOR


@dataclass(frozen=True)
class AutoscaleSample:
    """Signal extremes of one channel; NaN when the instrument has no value."""

    v_max: float
    v_min: float
    overload_high: bool
    overload_low: bool

    @property
    def overloaded(self) -> bool:
        return self.overload_high or self.overload_low


def infer_overload(result: MeasurementResult) -> bool:
    """Guess the overload state of a max/min measurement.

    This is a heuristic for instruments without an overload indicator: when
    the instrument reports no value it is assumed the signal leaves the ADC
    range. A channel whose trace is merely off-screen is classified as
    overloaded as well.
    """
    if result.overload is not None:
        return result.overload
    return math.isnan(result.value)


def estimate_missing(sample: AutoscaleSample, v_div: float, v_offset: float) -> AutoscaleSample:
    """Replace missing extremes by the edges of the current ADC range."""
    v_max = sample.v_max
    v_min = sample.v_min
    if math.isnan(v_max):
        v_max = v_offset + ADC_HALF_RANGE_DIVISIONS * v_div
    if math.isnan(v_min):
        v_min = v_offset - ADC_HALF_RANGE_DIVISIONS * v_div
    return AutoscaleSample(v_max, v_min, sample.overload_high, sample.overload_low)


def vertical_scaling(sample: AutoscaleSample, scaling_factor: float) -> tuple[float, float]:
    """Compute (volts per division, offset) for the measured extremes."""
    v_div = (sample.v_max - sample.v_min) / VERTICAL_DIVISIONS
    if sample.overloaded:
        v_div /= OVERLOAD_SCALING_FACTOR
    else:
        v_div /= scaling_factor
    v_offset = (sample.v_max + sample.v_min) / 2
    return v_div, v_offset


def timebase_per_division(frequency: float, signal_periods: float) -> float:
    """Seconds per division showing ``signal_periods`` periods on screen."""
    return signal_periods / (HORIZONTAL_DIVISIONS * frequency)


def _measure_extremes(
    scope: KeysightDSOX1000, channel: ChannelRef, outcome: Outcome
) -> AutoscaleSample | None:
    maximum = scope.run_measurement(channel=channel.ordinal, parameter="max")
    if measurement_failed(maximum):
        outcome.warn(
            f"voltage (vMax) measurement failed for channel {channel.ordinal}. "
            "Skip vertical scaling."
        )
        return None
    minimum = scope.run_measurement(channel=channel.ordinal, parameter="min")
    if measurement_failed(minimum):
        outcome.warn(
            f"voltage (vMin) measurement failed for channel {channel.ordinal}. "
            "Skip vertical scaling."
        )
        return None
    return AutoscaleSample(
        v_max=maximum.value,
        v_min=minimum.value,
        overload_high=infer_overload(maximum),
        overload_low=infer_overload(minimum),
    )


def _current_scaling(
    scope: KeysightDSOX1000, channel: ChannelRef, outcome: Outcome
) -> tuple[float, float] | None:
    transport = scope.transport
    response, status = transport.query(f"{channel.prefix}:SCALe?")
    v_div = as_float(response)
    if status != 0 or math.isnan(v_div):
        outcome.warn(
            f"no scaling returned for channel {channel.ordinal}. Skip vertical scaling."
        )
        return None
    response, status = transport.query(f"{channel.prefix}:OFFSet?")
    v_offset = as_float(response)
    if status != 0 or math.isnan(v_offset):
        outcome.warn(
            f"no offset returned for channel {channel.ordinal}. Skip vertical scaling."
        )
        return None
    return v_div, v_offset


def autoscale_vertical(
    scope: KeysightDSOX1000, channel: ChannelRef, outcome: Outcome
) -> int:
    """Adapt vertical scale and offset of one channel.

    Runs at most MAX_ITERATIONS rounds. As soon as one round shows no
    overload, exactly one more round confirms the scaling.

    Returns:
        Number of scaling rounds that were applied
    """
    transport = scope.transport
    response, _ = transport.query(f"{channel.prefix}:DISPlay?")
    trace = as_float(response)
    if math.isnan(trace):
        outcome.fail(f"trace state of channel {channel.ordinal} could not be read")
        return 0
    if not trace:
        return 0

    iterations = 0
    rounds = 0
    while iterations < MAX_ITERATIONS:
        sample = _measure_extremes(scope, channel, outcome)
        if sample is None:
            break

        if math.isnan(sample.v_max) or math.isnan(sample.v_min):
            scaling = _current_scaling(scope, channel, outcome)
            if scaling is None:
                break
            sample = estimate_missing(sample, *scaling)

        v_div, v_offset = vertical_scaling(sample, scope.settings.vertical_scaling_factor)
        outcome.merge(
            scope.configure_input(
                channel=channel.ordinal,
                v_div=f"{v_div:.4g}",
                v_offset=f"{v_offset:.4g}",
            )
        )
        transport.opc()

        rounds += 1
        iterations += 1
        if not sample.overloaded and iterations < MAX_ITERATIONS:
            iterations = MAX_ITERATIONS - 1
    return rounds


def autoscale_horizontal(scope: KeysightDSOX1000, outcome: Outcome) -> float | None:
    """Adapt the timebase to the frequency measured on the trigger source.

    Returns:
        The requested seconds per division, None when no frequency was measured
    """
    transport = scope.transport
    frequency = math.nan

    if not device_state.measurement_allowed(transport):
        outcome.warn(
            "either acquisition was not stopped or trigger sweep is not set to 'AUTO'"
        )
    else:
        response, _ = transport.query(":TRIGger:SOURce?")
        source = as_text(response)
        if source.upper().startswith(("CHAN", "EXT")):
            try:
                response, status = transport.query(f":MEASure:COUNter? {source}")
            except TransportError:
                outcome.warn("unterminated query in 'autoscale'")
                transport.opc()
            else:
                if status == 0:
                    frequency = as_float(response)
        else:
            outcome.warn("neither an input channel nor external is set as trigger source")

    t_div = None
    if 0 < frequency < INVALID_VALUE:
        t_div = timebase_per_division(frequency, scope.settings.signal_periods)
        outcome.merge(scope.configure_acquisition(t_div=f"{t_div:.4g}"))
    else:
        outcome.fail("frequency could not be fetched. Skip horizontal scaling.")

    transport.opc()
    return t_div
