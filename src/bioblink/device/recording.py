from __future__ import annotations

import csv
import time
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from .controller import ControllerSnapshot
from .protocol import EventKind, ProtocolEvent
from .state import TelemetrySnapshot

FIELDNAMES = [
    "ts_ms",
    "raw_signal",
    "filtered_signal",
    "envelope",
    "threshold",
    "baseline",
    "signal_quality",
    "menu_active",
    "focus_option",
    "calibrated",
]


class SessionRecorder:
    """
    Lazily creates a CSV writer when the first metrics snapshot arrives. Keeping
    writer creation lazy avoids touching the filesystem for sessions that never
    produce metrics.
    """

    def __init__(self, path: Path):
        self.path = path
        self.rows = 0
        self._writer: Optional[csv.DictWriter[str]] = None
        self._file_handle: Optional[TextIO] = None
        self._pending_metadata: List[str] = []
        self._t0 = time.monotonic()

    def on_event(self, event: ProtocolEvent, snapshot: ControllerSnapshot) -> None:
        if event.kind is EventKind.METRICS:
            self.append(snapshot.telemetry)

    def append(self, telemetry: TelemetrySnapshot, ts_ms: Optional[float] = None) -> None:
        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            for line in self._pending_metadata:
                self._file_handle.write(line + "\n")
            self._pending_metadata.clear()
            self._writer = csv.DictWriter(self._file_handle, fieldnames=FIELDNAMES)
            self._writer.writeheader()
        if ts_ms is None:
            ts_ms = (time.monotonic() - self._t0) * 1000.0
        row = asdict(telemetry)
        row["menu_active"] = int(telemetry.menu_active)
        row["calibrated"] = int(telemetry.calibrated)
        self._writer.writerow({"ts_ms": round(ts_ms, 3), **row})
        self.rows += 1
        if self._file_handle is not None:
            self._file_handle.flush()

    def set_metadata(self, metadata: Dict[str, str]) -> None:
        if not metadata:
            return
        line = "# " + " ".join(f"{key}={value}" for key, value in metadata.items())
        if self._writer is None:
            self._pending_metadata.append(line)
            return
        if self._file_handle is None:
            return
        self._file_handle.write(line + "\n")
        self._file_handle.flush()

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._writer = None
