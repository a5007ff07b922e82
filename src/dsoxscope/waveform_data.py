"""Waveform frame class for dsoxscope."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from dsoxscope.outcome import OK


@dataclass(frozen=True)
class TimeBase:
    """Time axis of a capture: time[i] = origin + i * increment."""

    increment: float
    origin: float


@dataclass(frozen=True)
class VoltsConversion:
    """Scaling used to turn raw samples of one channel into physical values."""

    scale: float
    offset: float
    reference_level: float


@dataclass
class WaveformFrame:
    """Waveform data captured from one or more channels.

    All channels of one capture share the same time base. A fresh frame is
    produced by every capture.
    """

    samples: dict[int, np.ndarray] = field(default_factory=dict)
    time_base: TimeBase | None = None
    conversions: dict[int, VoltsConversion] = field(default_factory=dict)
    status: int = OK
    warnings: list[str] = field(default_factory=list)

    @property
    def length(self) -> int:
        """Number of samples of the longest channel."""
        return max((len(values) for values in self.samples.values()), default=0)

    @property
    def sample_rate(self) -> float | None:
        """Sample rate in Sa/s, None when nothing was captured."""
        if self.time_base is None or self.time_base.increment == 0:
            return None
        return 1 / self.time_base.increment

    def get_times(self) -> np.ndarray:
        """Generate time values for each sample index."""
        if self.time_base is None:
            return np.zeros(0)
        return np.arange(self.length) * self.time_base.increment + self.time_base.origin
