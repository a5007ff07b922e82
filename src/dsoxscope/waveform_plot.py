"""Waveform plotting for dsoxscope."""

from __future__ import annotations

import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from dsoxscope.waveform_data import WaveformFrame

CHANNEL_COLORS = {1: "goldenrod", 2: "tab:green"}


def plot_waveform(frame: WaveformFrame) -> Figure:
    """Plot every captured channel of a frame over a common time axis.

    Args:
        frame: WaveformFrame to plot

    Returns:
        The matplotlib figure (close it when done)
    """
    # Convert times to milliseconds for readability
    times_ms = frame.get_times() * 1000

    fig, ax = plt.subplots(figsize=(12, 4))
    for channel, values in sorted(frame.samples.items()):
        ax.plot(
            times_ms[: len(values)],
            values,
            linewidth=0.5,
            label=f"CH{channel}",
            color=CHANNEL_COLORS.get(channel),
        )
    ax.set_xlabel("Time (ms)")
    ax.set_ylabel("Voltage (V)")
    ax.set_title("DSOX1000 Capture")
    ax.grid(True, alpha=0.3)
    ax.axhline(y=0, color="k", linewidth=0.5)
    ax.axvline(x=0, color="r", linewidth=0.5, linestyle="--", label="Trigger")
    ax.legend(loc="upper right")

    fig.tight_layout()
    return fig


def save_waveform_plot(frame: WaveformFrame, filename: str) -> None:
    """Save a plot of the waveform frame to an image file.

    Args:
        frame: WaveformFrame to plot
        filename: Path to the output image file (e.g., .png)
    """
    fig = plot_waveform(frame)
    fig.savefig(filename, dpi=150)
    plt.close(fig)
