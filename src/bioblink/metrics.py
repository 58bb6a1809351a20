"""Summary statistics for recorded blink sessions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd

from .data import SessionData
from .device.config import DisplayConfig
from .device.display import QualityLevel, classify_quality


@dataclass(frozen=True)
class SessionMetrics:
    samples: int
    duration_s: float
    quality_mean: float
    quality_min: float
    quality_max: float
    quality_share: Dict[str, float]
    calibrated_share: float
    menu_active_share: float
    threshold_crossings: int

    def as_frame(self) -> pd.DataFrame:
        rows = [
            {"metric": "samples", "value": float(self.samples)},
            {"metric": "duration_s", "value": self.duration_s},
            {"metric": "quality_mean", "value": self.quality_mean},
            {"metric": "quality_min", "value": self.quality_min},
            {"metric": "quality_max", "value": self.quality_max},
            *({"metric": f"quality_{level}_pct", "value": share * 100.0} for level, share in self.quality_share.items()),
            {"metric": "calibrated_pct", "value": self.calibrated_share * 100.0},
            {"metric": "menu_active_pct", "value": self.menu_active_share * 100.0},
            {"metric": "threshold_crossings", "value": float(self.threshold_crossings)},
        ]
        return pd.DataFrame(rows)


def compute_session_metrics(data: SessionData, display: DisplayConfig | None = None) -> SessionMetrics:
    display = display or DisplayConfig()
    quality = data.signal_quality
    levels = np.array([classify_quality(value, display).value for value in quality], dtype=str)
    quality_share = {level.value: _share(levels == level.value) for level in QualityLevel}

    return SessionMetrics(
        samples=int(quality.size),
        duration_s=data.duration_s,
        quality_mean=float(quality.mean()),
        quality_min=float(quality.min()),
        quality_max=float(quality.max()),
        quality_share=quality_share,
        calibrated_share=_share(data.calibrated),
        menu_active_share=_share(data.menu_active),
        threshold_crossings=_count_onsets(data.envelope > data.threshold),
    )


def _share(mask: np.ndarray) -> float:
    if mask.size == 0:
        return float("nan")
    return float(np.count_nonzero(mask) / mask.size)


def _count_onsets(above: np.ndarray) -> int:
    """Count rising edges of a boolean series (an initial True counts)."""
    if above.size == 0:
        return 0
    padded = np.concatenate(([False], above))
    return int(np.count_nonzero(padded[1:] & ~padded[:-1]))
