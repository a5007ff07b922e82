"""Driver layer for Keysight InfiniiVision DSOX1000 oscilloscopes."""

from dsoxscope.autoscale import AutoscaleSettings
from dsoxscope.keysight_dsox1000 import KeysightDSOX1000
from dsoxscope.measurement import MeasurementResult
from dsoxscope.outcome import FAILED, OK, Outcome
from dsoxscope.transport_protocol import TransportError, TransportProtocol, TransportTimeout
from dsoxscope.waveform_data import WaveformFrame

__all__ = [
    "FAILED",
    "OK",
    "AutoscaleSettings",
    "KeysightDSOX1000",
    "MeasurementResult",
    "Outcome",
    "TransportError",
    "TransportProtocol",
    "TransportTimeout",
    "WaveformFrame",
]
