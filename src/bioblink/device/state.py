from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Latest metrics reported by the device on a `DATA:` line."""

    raw_signal: float = 0.0
    filtered_signal: float = 0.0
    envelope: float = 0.0
    threshold: float = 0.0
    baseline: float = 0.0
    signal_quality: float = 0.0
    menu_active: bool = False
    focus_option: int = 1
    calibrated: bool = False


class TelemetryState:
    """Holder for the current snapshot; every update swaps the whole record."""

    def __init__(self, initial: Optional[TelemetrySnapshot] = None) -> None:
        self._snapshot = initial or TelemetrySnapshot()

    @property
    def snapshot(self) -> TelemetrySnapshot:
        return self._snapshot

    def update(self, snapshot: TelemetrySnapshot) -> None:
        self._snapshot = snapshot

    def set_signal_quality(self, quality: float) -> None:
        self._snapshot = replace(self._snapshot, signal_quality=quality)

    def mark_calibrated(self) -> None:
        self._snapshot = replace(self._snapshot, calibrated=True)


class CalibrationPhase(str, enum.Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class CalibrationState:
    phase: CalibrationPhase = CalibrationPhase.IDLE
    seconds_elapsed: int = 0

    @property
    def in_progress(self) -> bool:
        return self.phase is CalibrationPhase.IN_PROGRESS


class CalibrationMachine:
    """Idle -> InProgress(n) -> Complete, restarted by every new start event."""

    def __init__(self) -> None:
        self._state = CalibrationState()

    @property
    def state(self) -> CalibrationState:
        return self._state

    def start(self) -> CalibrationState:
        self._state = CalibrationState(CalibrationPhase.IN_PROGRESS, 0)
        return self._state

    def progress(self, seconds: int) -> CalibrationState:
        if not self._state.in_progress:
            logger.debug("Ignoring calibration progress %d while %s", seconds, self._state.phase.value)
            return self._state
        if seconds < self._state.seconds_elapsed:
            # elapsed time never runs backwards within one run
            logger.debug("Ignoring calibration progress regression %d -> %d", self._state.seconds_elapsed, seconds)
            return self._state
        self._state = CalibrationState(CalibrationPhase.IN_PROGRESS, seconds)
        return self._state

    def complete(self) -> CalibrationState:
        self._state = CalibrationState(CalibrationPhase.COMPLETE, self._state.seconds_elapsed)
        return self._state


@dataclass(frozen=True)
class InteractionState:
    menu_active: bool = False
    focused_option: int = 1
    last_selection: Optional[int] = None


class InteractionMachine:
    def __init__(self, require_active_menu: bool = False) -> None:
        self._state = InteractionState()
        self.require_active_menu = require_active_menu

    @property
    def state(self) -> InteractionState:
        return self._state

    def activate(self) -> InteractionState:
        self._state = replace(self._state, menu_active=True)
        return self._state

    def deactivate(self) -> InteractionState:
        # last_selection survives across menu sessions
        self._state = replace(self._state, menu_active=False)
        return self._state

    def focus(self, option: int) -> bool:
        if self.require_active_menu and not self._state.menu_active:
            return False
        self._state = replace(self._state, focused_option=option)
        return True

    def select(self, option: int) -> bool:
        if self.require_active_menu and not self._state.menu_active:
            return False
        self._state = replace(self._state, last_selection=option)
        return True
