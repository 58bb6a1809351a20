from __future__ import annotations

from bioblink.device.config import DisplayConfig
from bioblink.device.controller import BlinkController
from bioblink.device.display import (
    BlinkIntensity,
    QualityLevel,
    blink_intensity,
    blink_strength,
    calibration_fraction,
    classify_quality,
    format_status,
    menu_status,
)
from bioblink.device.state import CalibrationPhase, CalibrationState, TelemetrySnapshot

CFG = DisplayConfig()


def test_quality_bands():
    assert classify_quality(80.0, CFG) is QualityLevel.GOOD
    assert classify_quality(79.9, CFG) is QualityLevel.FAIR
    assert classify_quality(60.0, CFG) is QualityLevel.FAIR
    assert classify_quality(10.0, CFG) is QualityLevel.POOR


def test_blink_intensity_requires_calibration():
    telemetry = TelemetrySnapshot(envelope=10.0, baseline=1.0)
    assert blink_intensity(telemetry, CFG) is BlinkIntensity.UNCALIBRATED


def test_blink_intensity_bands():
    def intensity(envelope: float, baseline: float = 1.0) -> BlinkIntensity:
        return blink_intensity(TelemetrySnapshot(envelope=envelope, baseline=baseline, calibrated=True), CFG)

    assert intensity(1.5) is BlinkIntensity.STRONG
    assert intensity(1.2) is BlinkIntensity.WEAK
    assert intensity(1.05) is BlinkIntensity.IDLE
    assert intensity(5.0, baseline=0.0) is BlinkIntensity.IDLE
    assert blink_strength(TelemetrySnapshot(envelope=3.0, baseline=2.0)) == 0.5


def test_calibration_fraction():
    assert calibration_fraction(CalibrationState(), CFG) == 0.0
    assert calibration_fraction(CalibrationState(CalibrationPhase.IN_PROGRESS, 0), CFG) == 1 / 3
    assert calibration_fraction(CalibrationState(CalibrationPhase.IN_PROGRESS, 7), CFG) == 1.0
    assert calibration_fraction(CalibrationState(CalibrationPhase.COMPLETE, 2), CFG) == 1.0


def test_menu_status_follows_controller_state():
    controller = BlinkController()
    assert menu_status(controller.snapshot()) == "Inactive"
    controller._connected = True
    assert menu_status(controller.snapshot()) == "Initializing..."
    controller.process_line("CALIBRATION_STARTED")
    assert menu_status(controller.snapshot()) == "Calibrating..."
    controller.process_line("CALIBRATION_COMPLETE")
    assert menu_status(controller.snapshot()) == "Ready - Blink to activate"
    controller.feed("MENU_ACTIVATED\nFOCUS_OPTION:3\n")
    assert menu_status(controller.snapshot()) == "Menu active (option 3)"


def test_format_status_line():
    controller = BlinkController()
    controller.feed("DATA:1,1,1.5,1.2,1.0,87.5,0,1,1\nOPTION_SELECTED:2\n")
    line = format_status(controller.snapshot(), CFG)
    assert "quality=88% (good)" in line
    assert "blink=strong" in line
    assert "selection=2" in line
