from __future__ import annotations

import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Deque, Optional

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

from .config import DisplayConfig
from .controller import ControllerSnapshot
from .protocol import EventKind, ProtocolEvent


class LivePlotter:
    """Realtime 2×2 dashboard for signal, envelope, signal quality, and menu focus."""

    def __init__(
        self,
        *,
        display: Optional[DisplayConfig] = None,
        window: int = 500,
        refresh_ms: int = 100,
        snapshot_every: float = 0.0,
        snapshot_dir: Optional[Path] = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._display = display or DisplayConfig()
        self._lock = threading.Lock()
        self._t0: Optional[float] = None
        self._time: Deque[float] = deque(maxlen=window)
        self._raw: Deque[float] = deque(maxlen=window)
        self._filtered: Deque[float] = deque(maxlen=window)
        self._envelope: Deque[float] = deque(maxlen=window)
        self._threshold: Deque[float] = deque(maxlen=window)
        self._baseline: Deque[float] = deque(maxlen=window)
        self._quality: Deque[float] = deque(maxlen=window)
        self._focus: Deque[float] = deque(maxlen=window)
        self._running = True
        self._autoscale_every = 5
        self._autoscale_counter = 0
        self._snapshot_every = snapshot_every
        self._next_snapshot = time.monotonic() + snapshot_every if snapshot_every > 0 else None
        self._snapshot_dir = snapshot_dir

        self.fig, axes = plt.subplots(2, 2, figsize=(11, 6), sharex=False)
        (self.ax_signal, self.ax_envelope), (self.ax_quality, self.ax_focus) = axes

        self.ax_signal.set_title("Signal")
        self.ax_envelope.set_title("Envelope")
        self.ax_quality.set_title("Signal Quality")
        self.ax_quality.set_ylabel("%")
        self.ax_quality.set_ylim(0, 100)
        self.ax_focus.set_title("Focused Option")
        self.ax_quality.set_xlabel("Time (s)")
        self.ax_focus.set_xlabel("Time (s)")

        self.line_raw, = self.ax_signal.plot([], [], color="tab:gray", label="raw")
        self.line_filtered, = self.ax_signal.plot([], [], color="tab:blue", label="filtered")
        self.line_envelope, = self.ax_envelope.plot([], [], color="tab:green", label="envelope")
        self.line_threshold, = self.ax_envelope.plot([], [], color="tab:red", linestyle="--", label="threshold")
        self.line_baseline, = self.ax_envelope.plot([], [], color="black", linestyle=":", label="baseline")
        self.line_quality, = self.ax_quality.plot([], [], color="tab:orange")
        self.line_focus, = self.ax_focus.step([], [], color="tab:purple", where="post")
        self.ax_quality.axhline(self._display.quality_good, color="tab:green", linewidth=0.8, linestyle="--")
        self.ax_quality.axhline(self._display.quality_fair, color="tab:red", linewidth=0.8, linestyle="--")
        self.ax_signal.legend(loc="upper right")
        self.ax_envelope.legend(loc="upper right")

        self._anim = FuncAnimation(self.fig, self._update_plot, interval=refresh_ms, blit=False)

        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def _loop(self) -> None:  # pragma: no cover - GUI loop
        plt.show(block=False)
        while self._running:
            try:
                plt.pause(0.1)
            except Exception:
                break

    def on_event(self, event: ProtocolEvent, snapshot: ControllerSnapshot) -> None:
        if event.kind is not EventKind.METRICS:
            return
        telemetry = snapshot.telemetry
        with self._lock:
            now = time.monotonic()
            if self._t0 is None:
                self._t0 = now
            self._time.append(now - self._t0)
            self._raw.append(telemetry.raw_signal)
            self._filtered.append(telemetry.filtered_signal)
            self._envelope.append(telemetry.envelope)
            self._threshold.append(telemetry.threshold)
            self._baseline.append(telemetry.baseline)
            self._quality.append(telemetry.signal_quality)
            self._focus.append(float(snapshot.interaction.focused_option))
            if self._snapshot_every > 0 and self._next_snapshot and now >= self._next_snapshot:
                self._save_snapshot()
                self._next_snapshot = now + self._snapshot_every

    def _save_snapshot(self) -> None:
        if not self._snapshot_dir:
            return
        try:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._logger.error("Unable to create snapshot directory %s: %s", self._snapshot_dir, exc)
            return
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        path = self._snapshot_dir / f"blink_{timestamp}.png"
        try:
            self.fig.savefig(path)
            self._logger.info("Saved plot snapshot to %s", path)
        except Exception as exc:
            self._logger.error("Failed to save snapshot %s: %s", path, exc)

    def _update_plot(self, _frame):  # pragma: no cover - GUI callback
        with self._lock:
            times = list(self._time)
            series = [
                (self.ax_signal, self.line_raw, list(self._raw)),
                (self.ax_signal, self.line_filtered, list(self._filtered)),
                (self.ax_envelope, self.line_envelope, list(self._envelope)),
                (self.ax_envelope, self.line_threshold, list(self._threshold)),
                (self.ax_envelope, self.line_baseline, list(self._baseline)),
                (self.ax_quality, self.line_quality, list(self._quality)),
                (self.ax_focus, self.line_focus, list(self._focus)),
            ]
        lines = tuple(line for _, line, _ in series)
        if not times:
            return lines

        xmin = times[0]
        xmax = times[-1] if times[-1] > xmin else xmin + 1.0
        for axis, line, data in series:
            line.set_data(times, data)
            axis.set_xlim(xmin, xmax)

        self._autoscale_counter = (self._autoscale_counter + 1) % self._autoscale_every
        if self._autoscale_counter == 0:
            for axis in (self.ax_signal, self.ax_envelope, self.ax_focus):
                axis.relim()
                axis.autoscale_view()
        return lines

    def close(self) -> None:
        self._running = False
        try:
            plt.close(self.fig)
        except Exception:
            pass
        thread = getattr(self, "_thread", None)
        if thread and thread.is_alive():
            thread.join(timeout=1.0)
