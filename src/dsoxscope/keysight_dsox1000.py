"""Keysight InfiniiVision DSOX1000 oscilloscope macros for dsoxscope."""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Any

from dsoxscope import autoscale as autoscaling
from dsoxscope import device_state
from dsoxscope.autoscale import AutoscaleSettings
from dsoxscope.blocks import Preamble, decode_block, decode_samples
from dsoxscope.device_state import AcquisitionState, DeviceError, TriggerState
from dsoxscope.measurement import MeasurementResult, run_measurement
from dsoxscope.options import (
    ACQUISITION_MODES,
    AUTOSCALE_MODES,
    INPUT_UNITS,
    TRIGGER_COUPLINGS,
    TRIGGER_MODES,
    TRIGGER_SOURCES,
    TRIGGER_TYPES,
    AutoFiftyPercent,
    ChannelRef,
    FixedLevel,
    Parser,
    ZoomDisabled,
    ZoomFactor,
    bounded,
    channels,
    choice,
    format_number,
    is_empty,
    option_key,
    parse_file_name,
    parse_input_coupling,
    parse_options,
    parse_real,
    parse_trigger_level,
    parse_zoom_factor,
    parse_zoom_position,
    real,
    switch,
)
from dsoxscope.outcome import Outcome
from dsoxscope.transport_protocol import TransportProtocol, as_float, as_text
from dsoxscope.verify import (
    AbsoluteTolerance,
    Criticality,
    ExactMatch,
    NumericEqual,
    PrefixMatch,
    RatioWindow,
    RelativeTolerance,
    verified_set,
)
from dsoxscope.waveform_data import TimeBase, VoltsConversion, WaveformFrame

logger = logging.getLogger(__name__)

SCREENSHOT_FORMATS = (".bmp", ".png")
DEFAULT_SCREENSHOT_FILE = "./Key_Scope_DSOX1102A.bmp"

# Input impedance is fixed at 1 MOhm
INPUT_IMPEDANCE = 1e6
# Waveform point counts above this disable averaging
MAX_AVERAGED_POINTS = 1000


class KeysightDSOX1000:
    """Keysight DSOX1000 series oscilloscope driven over SCPI.

    Every macro returns a status record instead of raising for device-side
    problems. Parameters are passed as keyword arguments and accept strings,
    numbers and booleans, e.g.::

        scope.configure_input(channel="1, 2", v_div=0.5, coupling="dc")
    """

    CHANNELS = (1, 2)

    def __init__(
        self,
        transport: TransportProtocol,
        settings: AutoscaleSettings | None = None,
    ) -> None:
        """Initialize with an already opened transport.

        Args:
            transport: Transport to the instrument (opened and closed by the caller)
            settings: Autoscale knobs (default: 5 periods, scaling factor 0.8)
        """
        self.transport = transport
        self.settings = settings if settings is not None else AutoscaleSettings()

    # --------------------- SESSION ---------------------

    def run_after_open(self) -> Outcome:
        """Synchronize after the session was opened.

        The front panel stays unlocked; the instrument has no unlock button.
        """
        outcome = Outcome("runAfterOpen")
        self.transport.opc()
        return outcome

    def run_before_close(self) -> Outcome:
        """Release the front panel before the session is closed."""
        outcome = Outcome("runBeforeClose")
        if self.transport.write(":SYSTem:LOCK OFF") != 0:
            outcome.fail("front panel could not be unlocked")
        return outcome

    def reset(self) -> Outcome:
        """Restore factory defaults (same as Default/Erase > Factory Default)."""
        outcome = Outcome("reset")
        if self.transport.write("*RST") != 0:
            outcome.fail("reset command failed")
        self.transport.opc()
        return outcome

    def _simple_command(self, operation: str, command: str) -> Outcome:
        outcome = Outcome(operation)
        if self.transport.write(command) != 0:
            outcome.fail(f"command '{command}' failed")
        return outcome

    def clear(self) -> Outcome:
        """Clear the status registers."""
        return self._simple_command("clear", "*CLS")

    def lock(self) -> Outcome:
        """Lock the front panel."""
        return self._simple_command("lock", ":SYSTem:LOCK ON")

    def unlock(self) -> Outcome:
        """Unlock the front panel."""
        return self._simple_command("unlock", ":SYSTem:LOCK OFF")

    def acq_run(self) -> Outcome:
        """Start acquisitions."""
        return self._simple_command("acqRun", ":RUN")

    def acq_stop(self) -> Outcome:
        """Stop acquisitions."""
        return self._simple_command("acqStop", ":STOP")

    def autoset(self) -> Outcome:
        """Run the instrument's own autoscale on all channels.

        The instrument gives no feedback whether a signal was found.
        """
        outcome = Outcome("autoset")
        for command in (
            ":AUToscale:AMODE CURRent",
            ":AUToscale:CHANnels ALL",
            ":AUToscale",
        ):
            if self.transport.write(command) != 0:
                outcome.fail(f"command '{command}' failed")
        self.transport.opc()
        return outcome

    # --------------------- INPUT ---------------------

    def configure_input(self, **params: Any) -> Outcome:
        """Configure the inputs of the specified channels.

        Args:
            channel: 1, 2, '1, 2', [1, 2], 'ch1' ...
            trace: on/off
            impedance: only 1e6 is supported
            v_div: volts per division (> 0)
            v_offset: offset in volts
            coupling: 'AC' or 'DC'
            input_div: probe attenuation 0.1 .. 10000
            bw_limit: on/off
            invert: on/off
            skew: probe skew in seconds
            unit: 'V' or 'A'

        Returns:
            Outcome; failed when a discrete setting was not accepted
        """
        outcome = Outcome("configureInput")
        options = parse_options(
            "configureInput",
            params,
            {
                "channel": channels(self.CHANNELS),
                "trace": switch("trace"),
                "impedance": _parse_impedance,
                "v_div": real("vDiv", magnitude=True),
                "v_offset": real("vOffset"),
                "coupling": parse_input_coupling,
                "input_div": bounded("inputDiv", 0.1, 10000),
                "bw_limit": switch("bwLimit"),
                "invert": switch("invert"),
                "skew": real("skew"),
                "unit": choice("unit", INPUT_UNITS),
            },
            outcome,
        )

        selected: tuple[ChannelRef, ...] = options.get("channel", ())
        if not selected:
            outcome.warn("no channels are specified --> skip and continue")

        for channel in selected:
            self._configure_channel(channel, options, outcome)
        return outcome

    def _configure_channel(
        self, channel: ChannelRef, options: dict[str, Any], outcome: Outcome
    ) -> None:
        prefix = channel.prefix
        hard = Criticality.HARD
        soft = Criticality.SOFT

        if "coupling" in options:
            verified_set(
                self.transport, f"{prefix}:COUPling", options["coupling"],
                ExactMatch(), hard, outcome, "coupling",
            )
        if "input_div" in options:
            verified_set(
                self.transport, f"{prefix}:PROBe", f"{options['input_div']:g}",
                NumericEqual(), hard, outcome, "inputDiv",
            )
        if "bw_limit" in options:
            verified_set(
                self.transport, f"{prefix}:BWLimit", options["bw_limit"],
                ExactMatch(), hard, outcome, "bwLimit",
            )
        if "unit" in options:
            verified_set(
                self.transport, f"{prefix}:UNITs", options["unit"],
                ExactMatch(), hard, outcome, "unit",
            )
        if "invert" in options:
            verified_set(
                self.transport, f"{prefix}:INVert", options["invert"],
                ExactMatch(), hard, outcome, "invert",
            )
        if "trace" in options:
            verified_set(
                self.transport, f"{prefix}:DISPlay", options["trace"],
                ExactMatch(), hard, outcome, "trace",
            )
        if "v_div" in options:
            verified_set(
                self.transport, f"{prefix}:SCALe", format_number(options["v_div"]),
                RelativeTolerance(), soft, outcome, "vDiv",
            )
        if "v_offset" in options:
            verified_set(
                self.transport, f"{prefix}:OFFSet", format_number(options["v_offset"]),
                RelativeTolerance(), hard, outcome, "vOffset",
            )
        if "skew" in options:
            verified_set(
                self.transport, f"{prefix}:PROBe:SKEW", format_number(options["skew"]),
                NumericEqual(), soft, outcome, "skew",
            )

    # --------------------- ACQUISITION ---------------------

    def configure_acquisition(self, **params: Any) -> Outcome:
        """Configure timebase and acquisition.

        Args:
            t_div: seconds per division (> 0); an invalid value aborts the call
            sample_rate: not supported by this instrument
            max_length: number of waveform points; an invalid value aborts the call
            mode: 'sample', 'peakdetect', 'average', 'highres'
            num_average: number of averages 2 .. 65536

        Returns:
            Outcome; failed when a discrete setting was not accepted
        """
        outcome = Outcome("configureAcquisition")
        options = parse_options(
            "configureAcquisition",
            params,
            {
                "t_div": _fatal_real("tDiv"),
                "sample_rate": _unsupported("sampleRate"),
                "max_length": _fatal_real("maxLength"),
                "mode": choice("mode", ACQUISITION_MODES),
                "num_average": bounded("numAverage", 2, 65536),
            },
            outcome,
        )
        if not outcome.ok:
            return outcome

        hard = Criticality.HARD

        if "t_div" in options:
            # Timebase steps are coarse (1-2-5 sequence)
            verified_set(
                self.transport, ":TIMebase:SCALe", format_number(options["t_div"]),
                RatioWindow(), Criticality.SOFT, outcome, "tDiv",
            )

        if "mode" in options:
            verified_set(
                self.transport, ":ACQuire:TYPE", options["mode"],
                ExactMatch(), hard, outcome, "mode",
            )

        if "num_average" in options:
            result = verified_set(
                self.transport, ":ACQuire:TYPE", "AVER",
                ExactMatch(), hard, outcome, "numAverage (average mode)",
            )
            if result.within_tolerance:
                verified_set(
                    self.transport, ":ACQuire:COUNt", str(int(options["num_average"])),
                    NumericEqual(), hard, outcome, "numAverage",
                )

        if "max_length" in options:
            self._configure_max_length(int(options["max_length"]), outcome)

        return outcome

    def _configure_max_length(self, max_length: int, outcome: Outcome) -> None:
        hard = Criticality.HARD
        if max_length <= MAX_AVERAGED_POINTS:
            verified_set(
                self.transport, ":WAVeform:POINts:MODE", "NORMal",
                PrefixMatch(), hard, outcome, "maxLength (points mode)",
            )
        else:
            result = verified_set(
                self.transport, ":ACQuire:TYPE", "NORM",
                ExactMatch(), hard, outcome, "maxLength (acquisition type)",
            )
            if result.within_tolerance:
                outcome.warn(f"maxLength > {MAX_AVERAGED_POINTS} --> deactivate averaging")
                verified_set(
                    self.transport, ":WAVeform:POINts:MODE", "MAXimum",
                    PrefixMatch(), hard, outcome, "maxLength (points mode)",
                )

        # The number of transferred points also depends on scaling; not verified
        self.transport.write(f":WAVeform:POINts {max_length}")
        self.transport.opc()

    # --------------------- TRIGGER ---------------------

    def configure_trigger(self, **params: Any) -> Outcome:
        """Configure the trigger.

        Args:
            mode: 'single', 'normal', 'auto'
            type: 'risingedge', 'fallingedge'
            source: 'ch1', 'ch2', 'ext', 'ac-line'
            coupling: 'AC', 'DC', 'LFReject', 'HFReject', 'NoiseReject'
            level: trigger level in volts; NaN sets the level to 50 %
            delay: trigger delay in seconds

        Returns:
            Outcome; failed when a discrete setting was not accepted
        """
        outcome = Outcome("configureTrigger")
        options = parse_options(
            "configureTrigger",
            params,
            {
                "mode": choice("mode", TRIGGER_MODES),
                "type": choice("type", TRIGGER_TYPES),
                "source": choice("source", TRIGGER_SOURCES),
                "coupling": choice("coupling", TRIGGER_COUPLINGS),
                "level": parse_trigger_level,
                "delay": real("delay"),
            },
            outcome,
        )

        hard = Criticality.HARD

        if "mode" in options:
            mode = options["mode"]
            if mode == "SINGle":
                # Single shot arms the trigger once; nothing to read back
                self.transport.write(":SINGle")
            else:
                if mode == "AUTO":
                    # Leave single mode before switching the sweep
                    self.transport.write(":RUN")
                    self.transport.opc()
                verified_set(
                    self.transport, ":TRIGger:SWEep", mode,
                    PrefixMatch(), hard, outcome, "mode",
                )

        if "type" in options:
            verified_set(
                self.transport, ":TRIGger:MODE", "EDGE",
                ExactMatch(), hard, outcome, "type (edge)",
            )
            verified_set(
                self.transport, ":TRIGger:SLOPe", options["type"],
                PrefixMatch(), hard, outcome, "type (slope)",
            )

        if "source" in options:
            verified_set(
                self.transport, ":TRIGger:SOURce", options["source"],
                ExactMatch(), hard, outcome, "source",
            )

        if "coupling" in options:
            self._configure_trigger_coupling(options["coupling"], outcome)

        if "delay" in options:
            verified_set(
                self.transport, ":TIMebase:POSition", format_number(options["delay"], 4),
                AbsoluteTolerance(1e-3), Criticality.SOFT, outcome, "delay",
            )

        level = options.get("level")
        if isinstance(level, AutoFiftyPercent):
            self.transport.write(":TRIGger:LEVel:ASETup")
        elif isinstance(level, FixedLevel):
            verified_set(
                self.transport, ":TRIGger:EDGE:LEVel", format_number(level.volts),
                AbsoluteTolerance(1e-3), Criticality.SOFT, outcome, "level",
            )

        return outcome

    def _configure_trigger_coupling(self, coupling: str, outcome: Outcome) -> None:
        hard = Criticality.HARD
        if coupling == "HFReject":
            # HF reject cannot be combined with LF reject coupling
            response, _ = self.transport.query(":TRIGger:COUPling?")
            if as_text(response).upper().startswith("LFR"):
                verified_set(
                    self.transport, ":TRIGger:COUPling", "DC",
                    ExactMatch(), hard, outcome, "coupling",
                )
            verified_set(
                self.transport, ":TRIGger:REJect", coupling,
                PrefixMatch(), hard, outcome, "coupling (reject)",
            )
        elif coupling == "NREJect":
            verified_set(
                self.transport, ":TRIGger:NREJect", "1",
                NumericEqual(), hard, outcome, "coupling (noise reject)",
            )
        else:
            verified_set(
                self.transport, ":TRIGger:COUPling", coupling,
                ExactMatch(), hard, outcome, "coupling",
            )

    # --------------------- ZOOM ---------------------

    def configure_zoom(self, **params: Any) -> Outcome:
        """Configure the zoom window.

        Args:
            zoom_factor: magnification >= 2; NaN or values <= 1 disable zoom
            zoom_position: window position in seconds (NaN centers)

        Returns:
            Outcome; failed when the zoom window could not be switched
        """
        outcome = Outcome("configureZoom")
        options = parse_options(
            "configureZoom",
            params,
            {
                "zoom_factor": parse_zoom_factor,
                "zoom_position": parse_zoom_position,
            },
            outcome,
        )

        zoom = options.get("zoom_factor")
        if isinstance(zoom, ZoomDisabled):
            verified_set(
                self.transport, ":TIMebase:MODE", "MAIN",
                ExactMatch(), Criticality.HARD, outcome, "zoom (main timebase)",
            )
        elif isinstance(zoom, ZoomFactor):
            verified_set(
                self.transport, ":TIMebase:MODE", "WINDow",
                PrefixMatch(), Criticality.HARD, outcome, "zoom (window timebase)",
            )
            response, _ = self.transport.query(":TIMebase:SCALe?")
            timebase = as_float(response)
            if math.isnan(timebase):
                outcome.fail("cannot set zoomFactor, main timebase unknown")
            else:
                # Window scale is snapped by the instrument; not verified
                self.transport.write(
                    f":TIMebase:WINDow:SCALe {timebase / zoom.factor:.3g}"
                )

        if "zoom_position" in options:
            self.transport.write(f":TIMebase:WINDow:POSition {options['zoom_position']:.4g}")

        return outcome

    # --------------------- AUTOSCALE ---------------------

    def autoscale(self, **params: Any) -> Outcome:
        """Adjust vertical and/or horizontal scaling to the input signals.

        Args:
            mode: 'hor', 'vert' or 'both' (default)
            channel: channels for vertical scaling (default: all)

        Returns:
            Outcome; failed when a trace state or the signal frequency could
            not be read
        """
        outcome = Outcome("autoscale")
        options = parse_options(
            "autoscale",
            params,
            {
                "mode": choice("mode", AUTOSCALE_MODES),
                "channel": channels(self.CHANNELS),
            },
            outcome,
        )
        mode = options.get("mode")
        if mode is None:
            rejected = any(
                option_key(name) == "mode" and not is_empty(value)
                for name, value in params.items()
            )
            if rejected:
                outcome.info("mode is unknown --> no scaling applied")
                return outcome
            mode = "both"
            outcome.info("mode coerced to 'both'")

        selected: tuple[ChannelRef, ...] = options.get("channel", ())
        if not selected:
            selected = tuple(ChannelRef(ordinal) for ordinal in self.CHANNELS)

        if mode in ("vertical", "both"):
            for channel in selected:
                autoscaling.autoscale_vertical(self, channel, outcome)

        if mode in ("horizontal", "both"):
            autoscaling.autoscale_horizontal(self, outcome)

        return outcome

    # --------------------- SCREENSHOT ---------------------

    def make_screenshot(self, **params: Any) -> Outcome:
        """Save a screenshot of the display.

        Args:
            file_name: target file (.bmp or .png; default ./Key_Scope_DSOX1102A.bmp)
            dark_mode: on/off, dark or white background

        Returns:
            Outcome; failed for unsupported file names or missing data header
        """
        outcome = Outcome("makeScreenShot")
        options = parse_options(
            "makeScreenShot",
            params,
            {
                "file_name": parse_file_name,
                "dark_mode": switch("darkMode"),
            },
            outcome,
        )
        file_name = options.get("file_name", DEFAULT_SCREENSHOT_FILE)
        dark_mode = options.get("dark_mode") == "1"

        path = Path(file_name)
        stem, extension = os.path.splitext(path.name)
        if not stem or stem.startswith(".") and not extension:
            outcome.fail("file name must not be empty. Skip function.")
            return outcome
        if not extension:
            extension = SCREENSHOT_FORMATS[0]
            path = path.with_name(path.name + extension)
        elif extension.lower() not in SCREENSHOT_FORMATS:
            outcome.fail(
                f"file extension '{extension}' is not supported "
                f"(supported are {', '.join(SCREENSHOT_FORMATS)}). Skip function."
            )
            return outcome

        self.transport.write(f":HARDcopy:INKSaver {'OFF' if dark_mode else 'ON'}")
        self.transport.write(":HARDcopy:LAYout PORTrait")

        raw = self._query_binary(f":DISPlay:DATA? {extension[1:].upper()}")
        block = decode_block(raw)
        if not block.has_header:
            outcome.fail("missing header. Abort function.")
            return outcome
        if not block.valid:
            outcome.warn(f"{block.check.value}. Check screenshot file.")

        with open(path, "wb") as f:
            f.write(block.payload)
        logger.info("Saved screenshot to %s", path)

        if self.transport.opc() != 0:
            outcome.fail("operation complete request failed")
        return outcome

    # --------------------- MEASUREMENTS ---------------------

    def run_measurement(self, **params: Any) -> MeasurementResult:
        """Request a measurement value.

        Args:
            channel: source channel (two channels for 'phase' and 'delay')
            parameter: 'frequency', 'period', 'mean', 'cycrms', 'rms', 'pk-pk',
                'maximum', 'minimum', 'high', 'low', 'amplitude', 'overshoot',
                'preshoot', 'risetime', 'falltime', 'poswidth', 'negwidth',
                'dutycycle', 'phase', 'delay'

        Returns:
            MeasurementResult
        """
        outcome = Outcome("runMeasurement")
        # Channel and parameter are validated by the measurement engine itself
        options = parse_options(
            "runMeasurement",
            params,
            {"channel": lambda value, _: value, "parameter": lambda value, _: value},
            outcome,
        )
        result = run_measurement(
            self.transport,
            channel=options.get("channel"),
            parameter=options.get("parameter"),
            available_channels=self.CHANNELS,
        )
        result.warnings = outcome.warnings + result.warnings
        return result

    # --------------------- WAVEFORMS ---------------------

    def capture_waveform(self, **params: Any) -> WaveformFrame:
        """Download waveform data of the active channels.

        Args:
            channel: channels to download (default: 1, 2)

        Returns:
            WaveformFrame with one sample array per active channel
        """
        outcome = Outcome("captureWaveForm")
        options = parse_options(
            "captureWaveForm", params, {"channel": channels(self.CHANNELS)}, outcome
        )
        selected: tuple[ChannelRef, ...] = options.get("channel", ())
        if not selected:
            selected = tuple(ChannelRef(ordinal) for ordinal in self.CHANNELS)
            outcome.info("channel coerced to 1, 2")

        frame = WaveformFrame()

        # Downloading without data would end in a timeout
        if not device_state.data_available(self.transport):
            outcome.fail("no waveform data available. Capture canceled.")
            return self._finish_frame(frame, outcome)

        self.transport.write(":WAVeform:FORMat BYTE")
        self.transport.write(":WAVeform:UNSigned OFF")

        for channel in selected:
            response, _ = self.transport.query(f"{channel.prefix}:DISPlay?")
            active = as_float(response)
            if math.isnan(active) or not active:
                continue

            self.transport.write(f":WAVeform:SOURce {channel.source}")
            response, _ = self.transport.query(":WAVeform:PREamble?")
            try:
                preamble = Preamble.from_response(response)
            except ValueError:
                outcome.fail(f"invalid preamble for channel {channel.ordinal}")
                continue

            block = decode_block(self._query_binary(":WAVeform:DATA?"))
            if not block.has_header:
                outcome.fail(f"no header received for channel {channel.ordinal}")
                continue
            if not block.valid:
                outcome.warn(
                    f"wrong amount of data received for channel {channel.ordinal} "
                    f"({block.check.value})"
                )

            frame.samples[channel.ordinal] = decode_samples(block.payload, preamble)
            frame.conversions[channel.ordinal] = VoltsConversion(
                scale=preamble.y_increment,
                offset=preamble.y_origin,
                reference_level=preamble.y_reference,
            )
            # All channels of one acquisition share the time axis
            frame.time_base = TimeBase(
                increment=preamble.x_increment, origin=preamble.x_origin
            )

        return self._finish_frame(frame, outcome)

    @staticmethod
    def _finish_frame(frame: WaveformFrame, outcome: Outcome) -> WaveformFrame:
        frame.status = outcome.status
        frame.warnings = outcome.warnings
        return frame

    def _query_binary(self, command: str) -> bytes:
        """Send a query whose answer is a binary block."""
        if self.transport.supports_split_binary_read:
            self.transport.write(command)
            return self.transport.read()
        response, _ = self.transport.query(command)
        if isinstance(response, str):
            return response.encode("latin-1")
        return response

    # --------------------- STATE ---------------------

    @property
    def acquisition_state(self) -> AcquisitionState:
        return device_state.acquisition_state(self.transport)

    @property
    def trigger_state(self) -> TriggerState:
        return device_state.trigger_state(self.transport)

    @property
    def data_available(self) -> bool:
        return device_state.data_available(self.transport)

    @property
    def error_messages(self) -> list[DeviceError]:
        """Drain the instrument error queue."""
        return device_state.drain_error_queue(self.transport)


def _parse_impedance(value: Any, outcome: Outcome) -> None:
    if parse_real(value) != INPUT_IMPEDANCE:
        outcome.warn(f"impedance parameter cannot be configured ({INPUT_IMPEDANCE:g} coerced)")
    return None


def _fatal_real(name: str) -> Parser:
    """Parser for a positive number whose invalidity aborts the whole call."""

    def parse(value: Any, outcome: Outcome) -> float | None:
        number = parse_real(value)
        if not math.isfinite(number):
            outcome.fail(f"{name} parameter is invalid --> abort function")
            return None
        return abs(number)

    return parse


def _unsupported(name: str) -> Parser:
    def parse(value: Any, outcome: Outcome) -> None:
        outcome.warn(f"{name} parameter is not supported by this scope --> ignore and continue")
        return None

    return parse
