"""Read-only classification of controller state for dashboards and consoles."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from .config import DisplayConfig
from .state import CalibrationPhase, CalibrationState, TelemetrySnapshot

if TYPE_CHECKING:
    from .controller import ControllerSnapshot


class QualityLevel(str, enum.Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class BlinkIntensity(str, enum.Enum):
    UNCALIBRATED = "uncalibrated"
    IDLE = "idle"
    WEAK = "weak"
    STRONG = "strong"


def classify_quality(quality: float, cfg: DisplayConfig) -> QualityLevel:
    if quality >= cfg.quality_good:
        return QualityLevel.GOOD
    if quality >= cfg.quality_fair:
        return QualityLevel.FAIR
    return QualityLevel.POOR


def blink_strength(telemetry: TelemetrySnapshot) -> float:
    """Envelope excess over the baseline, relative to the baseline."""
    if telemetry.baseline <= 0:
        return 0.0
    return (telemetry.envelope - telemetry.baseline) / telemetry.baseline


def blink_intensity(telemetry: TelemetrySnapshot, cfg: DisplayConfig) -> BlinkIntensity:
    if not telemetry.calibrated:
        return BlinkIntensity.UNCALIBRATED
    strength = blink_strength(telemetry)
    if strength > cfg.blink_strong:
        return BlinkIntensity.STRONG
    if strength > cfg.blink_weak:
        return BlinkIntensity.WEAK
    return BlinkIntensity.IDLE


def calibration_fraction(state: CalibrationState, cfg: DisplayConfig) -> float:
    if state.phase is CalibrationPhase.COMPLETE:
        return 1.0
    if state.phase is CalibrationPhase.IDLE:
        return 0.0
    fraction = (state.seconds_elapsed + 1) / cfg.calibration_seconds
    return min(max(fraction, 0.0), 1.0)


def menu_status(snapshot: "ControllerSnapshot") -> str:
    if not snapshot.connected:
        return "Inactive"
    if snapshot.calibration.phase is CalibrationPhase.IN_PROGRESS:
        return "Calibrating..."
    if snapshot.interaction.menu_active:
        return f"Menu active (option {snapshot.interaction.focused_option})"
    if snapshot.calibration.phase is CalibrationPhase.COMPLETE or snapshot.telemetry.calibrated:
        return "Ready - Blink to activate"
    return "Initializing..."


def format_status(snapshot: "ControllerSnapshot", cfg: DisplayConfig) -> str:
    telemetry = snapshot.telemetry
    quality = classify_quality(telemetry.signal_quality, cfg)
    selection = snapshot.interaction.last_selection
    return (
        f"{menu_status(snapshot)} | quality={telemetry.signal_quality:.0f}% ({quality.value})"
        f" | blink={blink_intensity(telemetry, cfg).value}"
        f" | envelope={telemetry.envelope:.2f} threshold={telemetry.threshold:.2f}"
        f" | selection={selection if selection is not None else '-'}"
    )
