"""Command line interface for the bioblink package."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from .data import load_session_csv
from .device.config import load_config
from .device.runner import app as host_app
from .metrics import compute_session_metrics

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})
app.add_typer(host_app, name="host")


@app.command()
def summary(
    input_path: Path = typer.Option(..., "--in", help="Session CSV recorded with --record."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Host config JSON providing the quality bands."
    ),
    out_path: Optional[Path] = typer.Option(None, "--out", help="Write the metrics table to CSV."),
) -> None:
    """Summarise signal quality and menu usage of a recorded session."""

    try:
        data = load_session_csv(input_path)
        cfg = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc

    metrics = compute_session_metrics(data, cfg.display)
    typer.echo(f"Samples: {metrics.samples} over {metrics.duration_s:.1f} s")
    typer.echo(
        f"Signal quality: mean={metrics.quality_mean:.1f}% "
        f"min={metrics.quality_min:.1f}% max={metrics.quality_max:.1f}%"
    )
    shares = ", ".join(f"{level}={share * 100:.1f}%" for level, share in metrics.quality_share.items())
    typer.echo(f"Quality bands: {shares}")
    typer.echo(f"Calibrated: {metrics.calibrated_share * 100:.1f}% of samples")
    typer.echo(f"Menu active: {metrics.menu_active_share * 100:.1f}% of samples")
    typer.echo(f"Envelope threshold crossings: {metrics.threshold_crossings}")

    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        metrics.as_frame().to_csv(out_path, index=False)
        typer.echo(f"Metrics written to {out_path}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
