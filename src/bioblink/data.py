"""Loading utilities for recorded blink sessions."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = {
    "ts_ms",
    "envelope",
    "threshold",
    "baseline",
    "signal_quality",
    "menu_active",
    "focus_option",
    "calibrated",
}
OPTIONAL_COLUMNS = {"raw_signal", "filtered_signal"}


@dataclass(frozen=True)
class SessionData:
    """Container for a recorded sequence of metrics snapshots."""

    dataframe: pd.DataFrame
    ts_s: np.ndarray
    envelope: np.ndarray
    threshold: np.ndarray
    signal_quality: np.ndarray
    menu_active: np.ndarray
    calibrated: np.ndarray

    @property
    def duration_s(self) -> float:
        if self.ts_s.size < 2:
            return 0.0
        return float(self.ts_s[-1] - self.ts_s[0])


def load_session_csv(path: str | Path) -> SessionData:
    """Load a session recorded by ``SessionRecorder`` from *path*.

    Parameters
    ----------
    path:
        CSV file with one row per metrics snapshot. Lines starting with ``#``
        carry recorder metadata and are skipped.

    Returns
    -------
    SessionData
        Rows sorted by timestamp with flag columns converted to booleans.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    df = pd.read_csv(path, comment="#")
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    if df.empty:
        raise ValueError("Session contains no metrics snapshots")

    df = df.sort_values("ts_ms", kind="mergesort").reset_index(drop=True)
    df["menu_active"] = df["menu_active"].astype(int).astype(bool)
    df["calibrated"] = df["calibrated"].astype(int).astype(bool)

    return SessionData(
        dataframe=df,
        ts_s=df["ts_ms"].to_numpy(dtype=float) / 1000.0,
        envelope=df["envelope"].to_numpy(dtype=float),
        threshold=df["threshold"].to_numpy(dtype=float),
        signal_quality=df["signal_quality"].to_numpy(dtype=float),
        menu_active=df["menu_active"].to_numpy(dtype=bool),
        calibrated=df["calibrated"].to_numpy(dtype=bool),
    )
