"""Simple plotting companion for recorded blink sessions."""

from __future__ import annotations

import sys
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd


def plot_session(csv_path: Path) -> None:
    """Plot envelope, threshold and signal quality from a recorded session CSV."""
    data = pd.read_csv(csv_path, comment="#")
    t = data["ts_ms"] / 1000.0
    fig, ax1 = plt.subplots(figsize=(10, 5))
    ax1.plot(t, data["envelope"], label="envelope", color="tab:green")
    ax1.plot(t, data["threshold"], label="threshold", color="tab:red", linestyle="--")
    ax1.plot(t, data["baseline"], label="baseline", color="black", linestyle=":")
    ax1.set_xlabel("Time [s]")
    ax1.set_ylabel("Envelope")
    ax1.legend(loc="upper left")

    ax2 = ax1.twinx()
    ax2.plot(t, data["signal_quality"], label="signal quality", color="tab:orange", alpha=0.6)
    ax2.set_ylabel("Signal quality [%]", color="tab:orange")
    ax2.set_ylim(0, 100)
    ax2.tick_params(axis="y", labelcolor="tab:orange")

    fig.tight_layout()
    plt.show()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        raise SystemExit("usage: plot_session.py SESSION.csv")
    plot_session(Path(sys.argv[1]))
