"""CLI entry point for dsoxscope."""

import argparse
import logging
import math
import sys

from dsoxscope.autoscale import (
    DEFAULT_SIGNAL_PERIODS,
    DEFAULT_VERTICAL_SCALING_FACTOR,
    AutoscaleSettings,
)
from dsoxscope.keysight_dsox1000 import KeysightDSOX1000
from dsoxscope.log import configure_logging
from dsoxscope.transport_protocol import TransportError
from dsoxscope.visa_transport import VisaTransport
from dsoxscope.waveform_plot import save_waveform_plot

DEFAULT_MEASUREMENTS = ["frequency", "pk-pk"]

logger = logging.getLogger("dsoxscope.cli")


def _parse_channel_list(value: str) -> list[int]:
    try:
        return [int(item) for item in value.split(",") if item.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid channel list '{value}'") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dsox-scope",
        description="Autoscale, measure and capture a Keysight DSOX1000 oscilloscope",
    )
    parser.add_argument(
        "resource",
        nargs="?",
        help="VISA resource (e.g., USB0::0x2A8D::0x1797::CN57046145::INSTR). "
        "If not provided, auto-discovers the first DSOX1000.",
    )
    parser.add_argument(
        "--channels",
        type=_parse_channel_list,
        default=list(KeysightDSOX1000.CHANNELS),
        help="Comma separated channels (default: 1,2)",
    )
    parser.add_argument(
        "--periods",
        type=float,
        default=DEFAULT_SIGNAL_PERIODS,
        help=f"Signal periods shown after autoscale (default: {DEFAULT_SIGNAL_PERIODS:g})",
    )
    parser.add_argument(
        "--scaling-factor",
        type=float,
        default=DEFAULT_VERTICAL_SCALING_FACTOR,
        help="Display range used by the signal "
        f"(default: {DEFAULT_VERTICAL_SCALING_FACTOR:g})",
    )
    parser.add_argument(
        "--measure",
        nargs="+",
        default=DEFAULT_MEASUREMENTS,
        metavar="NAME",
        help="Measurements to run per channel (default: frequency pk-pk)",
    )
    parser.add_argument("--screenshot", metavar="FILE", help="Save a screenshot")
    parser.add_argument("--plot", metavar="FILE", help="Save a plot of the waveforms")
    parser.add_argument(
        "--verbose", action="store_true", help="Log instrument traffic"
    )
    return parser


def run(scope: KeysightDSOX1000, args: argparse.Namespace) -> int:
    """Run the test bench sequence on a connected scope.

    Returns:
        Process exit code, 1 when any step failed
    """
    failures = 0

    outcome = scope.autoscale(channel=args.channels)
    failures += not outcome.ok
    print(f"Autoscale: {'ok' if outcome.ok else 'failed'}")

    for channel in args.channels:
        for name in args.measure:
            result = scope.run_measurement(channel=channel, parameter=name)
            if result.status != 0 or math.isnan(result.value):
                failures += result.status != 0
                print(f"  CH{channel} {name}: n/a ({result.error_message or 'no value'})")
            else:
                print(f"  CH{channel} {name}: {result.value:.4g} {result.unit}")

    frame = scope.capture_waveform(channel=args.channels)
    if frame.status != 0:
        failures += 1
        print("Waveform capture failed")
    else:
        print(f"Captured {frame.length} samples from channels {sorted(frame.samples)}")
        if args.plot:
            save_waveform_plot(frame, args.plot)
            print(f"Saved plot to {args.plot}")

    if args.screenshot:
        outcome = scope.make_screenshot(file_name=args.screenshot)
        failures += not outcome.ok
        if outcome.ok:
            print(f"Saved screenshot to {args.screenshot}")

    for error in scope.error_messages:
        print(f"Instrument error {error.code}: {error.message}")

    return 1 if failures else 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the dsoxscope CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.resource:
            print(f"Connecting to {args.resource}...")
            transport = VisaTransport(args.resource)
            transport.connect()
        else:
            print("Searching for Keysight DSOX1000 oscilloscope...")
            transport = VisaTransport.auto_connect()
    except ConnectionError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print("Connected to oscilloscope")
    scope = KeysightDSOX1000(
        transport,
        settings=AutoscaleSettings(
            signal_periods=args.periods,
            vertical_scaling_factor=args.scaling_factor,
        ),
    )

    exit_code = 1
    try:
        scope.run_after_open()
        exit_code = run(scope, args)
    except TransportError as e:
        logger.error("Transport failure: %s", e)
    except KeyboardInterrupt:
        print("\nInterrupted")
    finally:
        scope.run_before_close()
        transport.disconnect()
        print("Disconnected")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
