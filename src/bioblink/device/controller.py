from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .config import BlinkHostConfig
from .frames import LineSplitter
from .notify import NotificationLog
from .protocol import EventKind, ProtocolEvent, decode_line
from .state import (
    CalibrationMachine,
    CalibrationState,
    InteractionMachine,
    InteractionState,
    TelemetrySnapshot,
    TelemetryState,
)
from .transport import SerialUnavailableError, TransportError

logger = logging.getLogger(__name__)

_LINE_PREVIEW = 80


class Transport(Protocol):
    @property
    def description(self) -> str: ...

    def open(self) -> None: ...

    def read(self) -> Tuple[str, bool]: ...

    def release(self) -> None: ...


@dataclass(frozen=True)
class ControllerSnapshot:
    connected: bool
    telemetry: TelemetrySnapshot
    calibration: CalibrationState
    interaction: InteractionState


EventCallback = Callable[[ProtocolEvent, ControllerSnapshot], None]


def _preview(line: str) -> str:
    if len(line) <= _LINE_PREVIEW:
        return repr(line)
    return repr(line[:_LINE_PREVIEW]) + f"... ({len(line)} chars)"


class BlinkController:
    """
    Owns the connection flag and the three state holders fed by the decode loop.

    Lines are decoded and applied one at a time; each line's update completes
    before the next line is looked at. Presentation code reads `snapshot()` or
    registers a callback with `subscribe()`.
    """

    def __init__(self, config: Optional[BlinkHostConfig] = None) -> None:
        self.config = config or BlinkHostConfig()
        self.telemetry = TelemetryState()
        self.calibration = CalibrationMachine()
        self.interaction = InteractionMachine(self.config.interaction.require_active_menu)
        self.notifications = NotificationLog(self.config.host.notification_history)
        self.splitter = LineSplitter()
        self._connected = False
        self._stop_event = threading.Event()
        self._callbacks: List[EventCallback] = []
        self._counts: Counter[str] = Counter()

    @property
    def connected(self) -> bool:
        return self._connected

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            connected=self._connected,
            telemetry=self.telemetry.snapshot,
            calibration=self.calibration.state,
            interaction=self.interaction.state,
        )

    def subscribe(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def stats(self) -> Dict[str, int]:
        stats = dict(self._counts)
        stats["lines"] = sum(self._counts.values())
        return stats

    def feed(self, chunk: str) -> List[ProtocolEvent]:
        return [self.process_line(line) for line in self.splitter.feed(chunk)]

    def finish(self) -> List[ProtocolEvent]:
        return [self.process_line(line) for line in self.splitter.flush()]

    def process_line(self, line: str) -> ProtocolEvent:
        event = decode_line(line)
        self.apply(event)
        return event

    def apply(self, event: ProtocolEvent) -> None:
        self._counts[event.kind.value] += 1
        handler = self._HANDLERS.get(event.kind, BlinkController._apply_unknown)
        handler(self, event)
        if event.issues and event.kind is not EventKind.UNKNOWN:
            self.notifications.warning(f"Malformed {event.kind.value} payload ({'; '.join(event.issues)})")
        if self._callbacks:
            self._dispatch(event)

    def _dispatch(self, event: ProtocolEvent) -> None:
        snapshot = self.snapshot()
        for callback in self._callbacks:
            try:
                callback(event, snapshot)
            except Exception:
                logger.exception("Event subscriber failed on %s", event.kind.value)

    def _apply_calibration_started(self, event: ProtocolEvent) -> None:
        self.calibration.start()
        self.notifications.info("System calibration started - please remain still")

    def _apply_calibration_progress(self, event: ProtocolEvent) -> None:
        seconds = int(event.value or 0)
        state = self.calibration.progress(seconds)
        if state.in_progress:
            total = self.config.display.calibration_seconds
            self.notifications.info(f"Calibration: {state.seconds_elapsed + 1}/{total} seconds")

    def _apply_calibration_complete(self, event: ProtocolEvent) -> None:
        self.calibration.complete()
        self.telemetry.mark_calibrated()
        self.notifications.success("Calibration complete - system ready")

    def _apply_menu_activated(self, event: ProtocolEvent) -> None:
        self.interaction.activate()
        self.notifications.info("Menu activated")

    def _apply_menu_deactivated(self, event: ProtocolEvent) -> None:
        self.interaction.deactivate()
        self.notifications.info("Menu deactivated")

    def _apply_menu_timeout(self, event: ProtocolEvent) -> None:
        self.interaction.deactivate()
        self.notifications.warning("Menu timeout")

    def _apply_focus(self, event: ProtocolEvent) -> None:
        if self.interaction.focus(event.option):
            self.notifications.info(f"Focus on option {event.option}")
        else:
            self.notifications.warning(f"Ignoring focus on option {event.option} while menu is inactive")

    def _apply_selection(self, event: ProtocolEvent) -> None:
        if self.interaction.select(event.option):
            self.notifications.success(f"Option {event.option} selected")
        else:
            self.notifications.warning(f"Ignoring selection of option {event.option} while menu is inactive")

    def _apply_single_blink(self, event: ProtocolEvent) -> None:
        self.notifications.info("Single blink - focus cycling")

    def _apply_double_blink(self, event: ProtocolEvent) -> None:
        self.notifications.success("Double blink - select")

    def _apply_valid_blink(self, event: ProtocolEvent) -> None:
        self.notifications.success("Valid blink detected")

    def _apply_invalid_blink(self, event: ProtocolEvent) -> None:
        self.notifications.warning("Invalid blink")

    def _apply_metrics(self, event: ProtocolEvent) -> None:
        if event.telemetry is not None:
            self.telemetry.update(event.telemetry)

    def _apply_signal_quality(self, event: ProtocolEvent) -> None:
        self.telemetry.set_signal_quality(float(event.value or 0.0))

    def _apply_unknown(self, event: ProtocolEvent) -> None:
        reason = event.issues[0] if event.issues else "unrecognised line"
        self.notifications.warning(f"Could not decode line ({reason}): {_preview(event.line)}")

    _HANDLERS: Dict[EventKind, Callable[["BlinkController", ProtocolEvent], None]] = {
        EventKind.CALIBRATION_STARTED: _apply_calibration_started,
        EventKind.CALIBRATION_PROGRESS: _apply_calibration_progress,
        EventKind.CALIBRATION_COMPLETE: _apply_calibration_complete,
        EventKind.MENU_ACTIVATED: _apply_menu_activated,
        EventKind.MENU_DEACTIVATED: _apply_menu_deactivated,
        EventKind.MENU_TIMEOUT: _apply_menu_timeout,
        EventKind.FOCUS_CHANGED: _apply_focus,
        EventKind.OPTION_SELECTED: _apply_selection,
        EventKind.SINGLE_BLINK: _apply_single_blink,
        EventKind.DOUBLE_BLINK: _apply_double_blink,
        EventKind.VALID_BLINK: _apply_valid_blink,
        EventKind.INVALID_BLINK: _apply_invalid_blink,
        EventKind.METRICS: _apply_metrics,
        EventKind.SIGNAL_QUALITY: _apply_signal_quality,
        EventKind.UNKNOWN: _apply_unknown,
    }

    def stop(self) -> None:
        self._stop_event.set()

    def run(self, transport: Transport, on_tick: Optional[Callable[[], None]] = None) -> bool:
        """
        Connect, read until end-of-stream, failure or `stop()`, then release.

        Returns False when the link could not be opened or failed while
        reading. The transport is released on every exit path.
        """
        self._stop_event.clear()
        self.notifications.info(f"Opening {transport.description}")
        try:
            transport.open()
        except SerialUnavailableError as exc:
            self.notifications.error(f"Serial access not supported: {exc}")
            transport.release()
            return False
        except TransportError as exc:
            self.notifications.error(f"Connection failed: {exc}")
            transport.release()
            return False

        self._connected = True
        self.notifications.success(f"Connected to {transport.description}")
        clean = True
        try:
            while not self._stop_event.is_set():
                chunk, final = transport.read()
                if chunk:
                    self.feed(chunk)
                if on_tick is not None:
                    on_tick()
                if final:
                    break
            self.finish()
        except TransportError as exc:
            clean = False
            if self.splitter.pending:
                logger.debug("Discarding %d unterminated chars after link failure", len(self.splitter.pending))
            self.splitter.reset()
            self.notifications.error(f"Serial communication error: {exc}")
        finally:
            self._connected = False
            transport.release()
        self.notifications.info(f"Disconnected from {transport.description}")
        return clean
