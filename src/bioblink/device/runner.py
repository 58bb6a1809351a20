from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

import typer

from .config import load_config
from .controller import BlinkController, Transport
from .display import calibration_fraction, format_status
from .protocol import decode_line
from .recording import SessionRecorder
from .transport import SerialTransport, StreamTransport

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .plotting import LivePlotter


class BlinkHost:
    """Host-side orchestrator wiring the controller to its collaborators."""

    def __init__(
        self,
        controller: BlinkController,
        transport: Transport,
        recorder: Optional[SessionRecorder] = None,
        plotter: Optional["LivePlotter"] = None,
    ):
        self.controller = controller
        self.transport = transport
        self.recorder = recorder
        self.plotter = plotter
        if self.recorder:
            self.controller.subscribe(self.recorder.on_event)
        if self.plotter:
            self.controller.subscribe(self.plotter.on_event)
        interval = self.controller.config.host.stats_log_interval
        self._interval_sec = max(float(interval), 1.0) if interval > 0 else 0.0
        self._next_log = time.monotonic() + self._interval_sec

    def run(self) -> bool:
        clean = False
        try:
            clean = self.controller.run(self.transport, on_tick=self._tick)
        except KeyboardInterrupt:
            logger.info("Stopping host (Ctrl+C)")
            self.controller.stop()
            self.transport.release()
        finally:
            self._emit_stats("Final stats")
            if self.recorder:
                self.recorder.close()
            if self.plotter:
                self.plotter.close()
        return clean

    def _tick(self) -> None:
        if not self._interval_sec or time.monotonic() < self._next_log:
            return
        self._emit_stats("Stats")
        logger.info("%s", format_status(self.controller.snapshot(), self.controller.config.display))
        self._next_log = time.monotonic() + self._interval_sec

    def _emit_stats(self, label: str) -> None:
        stats = self.controller.stats()
        logger.info(
            "%s: lines=%d metrics=%d unknown=%d recorded=%d",
            label,
            stats.get("lines", 0),
            stats.get("metrics", 0),
            stats.get("unknown", 0),
            self.recorder.rows if self.recorder else 0,
        )


def configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level '{level}'", param_hint="--log-level")
    logging.basicConfig(level=numeric, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _build_recorder(path: Optional[Path], metadata: dict) -> Optional[SessionRecorder]:
    if path is None:
        return None
    recorder = SessionRecorder(path)
    recorder.set_metadata(metadata)
    return recorder


def _print_state(controller: BlinkController) -> None:
    snapshot = controller.snapshot()
    cfg = controller.config.display
    telemetry = snapshot.telemetry
    typer.echo(format_status(snapshot, cfg))
    typer.echo(
        f"Calibration: {snapshot.calibration.phase.value} "
        f"({calibration_fraction(snapshot.calibration, cfg) * 100:.0f}%)"
    )
    typer.echo(
        f"Telemetry: raw={telemetry.raw_signal:g} filtered={telemetry.filtered_signal:g} "
        f"envelope={telemetry.envelope:g} threshold={telemetry.threshold:g} baseline={telemetry.baseline:g} "
        f"calibrated={telemetry.calibrated}"
    )
    typer.echo(
        f"Interaction: menu_active={snapshot.interaction.menu_active} "
        f"focused={snapshot.interaction.focused_option} selection={snapshot.interaction.last_selection}"
    )
    stats = controller.stats()
    typer.echo(f"Lines: {stats.get('lines', 0)} (unknown={stats.get('unknown', 0)})")


app = typer.Typer(add_completion=False, help="BioAmp blink host utilities.")


@app.command()
def run(
    port: str = typer.Option(
        "/dev/ttyACM0", "--port", "-p", help="Serial device. Use '-' to read from stdin."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to host config JSON (defaults when omitted)."
    ),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set link.baudrate=57600 --set display.quality_good=85",
    ),
    record: Optional[Path] = typer.Option(None, "--record", help="Record metrics snapshots to CSV."),
    plot: bool = typer.Option(False, "--plot", help="Show realtime 2x2 Matplotlib dashboard."),
    plot_snapshot_every: float = typer.Option(0.0, "--plot-snapshot-every", help="Save PNG every N seconds (0=off)."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
):
    """Run the host loop: read the device stream, decode lines, track state."""

    configure_logging(log_level)
    try:
        cfg = load_config(config_path, override or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    record_path = record or cfg.output_csv
    plotter = None
    if plot:
        try:
            from .plotting import LivePlotter
        except ImportError as exc:
            raise typer.BadParameter("Matplotlib is required for --plot (pip install .[plot])") from exc
        snapshot_dir = None
        if plot_snapshot_every > 0:
            snapshot_dir = Path(record_path).resolve().parent if record_path else Path.cwd() / "plot_snapshots"
        plotter = LivePlotter(display=cfg.display, snapshot_every=plot_snapshot_every, snapshot_dir=snapshot_dir)
        logger.info("Live plot enabled")

    if port == "-":
        transport: Transport = StreamTransport(sys.stdin, cfg.host.read_chunk_size, name="stdin")
    else:
        transport = SerialTransport(port, cfg.link, cfg.host.read_chunk_size)
    recorder = _build_recorder(record_path, {"port": port, "baud": str(cfg.link.baudrate)})
    controller = BlinkController(cfg)
    host = BlinkHost(controller, transport, recorder=recorder, plotter=plotter)
    if not host.run():
        raise typer.Exit(code=1)


@app.command()
def replay(
    input_path: Path = typer.Option(..., "--in", help="Captured device log", exists=True, readable=True),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to host config JSON."),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
    record: Optional[Path] = typer.Option(None, "--record", help="Record metrics snapshots to CSV."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
):
    """Feed a captured log through the decoder and print the final state."""

    configure_logging(log_level)
    try:
        cfg = load_config(config_path, override or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    handle = input_path.open("r", encoding="utf-8", errors="ignore", newline="")
    transport = StreamTransport(handle, cfg.host.read_chunk_size, close_on_release=True, name=str(input_path))
    recorder = _build_recorder(record, {"source": input_path.name})
    controller = BlinkController(cfg)
    host = BlinkHost(controller, transport, recorder=recorder)
    ok = host.run()
    _print_state(controller)
    if recorder is not None:
        typer.echo(f"Recorded {recorder.rows} snapshots to {record}")
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def decode(lines: List[str] = typer.Argument(..., help="Protocol lines to decode")):
    """Print the decoded event for each protocol line."""

    for line in lines:
        event = decode_line(line.strip())
        parts = [event.kind.value]
        if event.value is not None:
            parts.append(f"value={event.value:g}")
        if event.telemetry is not None:
            parts.append(repr(event.telemetry))
        if event.issues:
            parts.append("issues=" + "; ".join(event.issues))
        typer.echo(" ".join(parts))
