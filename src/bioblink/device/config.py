from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

PARITY_CHOICES = {"N", "E", "O", "M", "S"}


@dataclass
class LinkConfig:
    baudrate: int = 115200
    bytesize: int = 8
    parity: str = "N"
    stopbits: int = 1
    rtscts: bool = False
    xonxoff: bool = False
    timeout: float = 0.5


@dataclass
class HostRuntime:
    read_chunk_size: int = 256
    notification_history: int = 50
    stats_log_interval: float = 30.0


@dataclass
class DisplayConfig:
    quality_good: float = 80.0
    quality_fair: float = 60.0
    blink_strong: float = 0.3
    blink_weak: float = 0.1
    calibration_seconds: int = 3


@dataclass
class InteractionConfig:
    require_active_menu: bool = False


@dataclass
class BlinkHostConfig:
    link: LinkConfig = field(default_factory=LinkConfig)
    host: HostRuntime = field(default_factory=HostRuntime)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    output_csv: Path | None = None

    def validate(self) -> "BlinkHostConfig":
        if self.link.parity not in PARITY_CHOICES:
            raise ValueError(f"Unsupported parity '{self.link.parity}' (expected one of {sorted(PARITY_CHOICES)})")
        if self.link.bytesize not in {5, 6, 7, 8}:
            raise ValueError(f"Unsupported bytesize {self.link.bytesize}")
        if self.link.stopbits not in {1, 2}:
            raise ValueError(f"Unsupported stopbits {self.link.stopbits}")
        if self.link.baudrate <= 0:
            raise ValueError("link.baudrate must be positive")
        if self.host.read_chunk_size <= 0:
            raise ValueError("host.read_chunk_size must be positive")
        if self.host.notification_history <= 0:
            raise ValueError("host.notification_history must be positive")
        if self.display.quality_fair > self.display.quality_good:
            raise ValueError("display.quality_fair may not exceed display.quality_good")
        if self.display.blink_weak > self.display.blink_strong:
            raise ValueError("display.blink_weak may not exceed display.blink_strong")
        if self.display.calibration_seconds <= 0:
            raise ValueError("display.calibration_seconds must be positive")
        return self


def _read_json(path: Path) -> Dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")
    return data


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> BlinkHostConfig:
    """
    Load the host configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["link.baudrate=57600", "display.quality_good=85"]
    Passing ``path=None`` starts from the built-in defaults.
    """
    merged = _read_json(Path(path)) if path is not None else {}
    for override in overrides or []:
        _apply_override(merged, override)
    link = merged.get("link") or {}
    host = merged.get("host") or {}
    display = merged.get("display") or {}
    interaction = merged.get("interaction") or {}
    config = BlinkHostConfig(
        link=LinkConfig(
            baudrate=int(link.get("baudrate", 115200)),
            bytesize=int(link.get("bytesize", 8)),
            parity=str(link.get("parity", "N")).upper(),
            stopbits=int(link.get("stopbits", 1)),
            rtscts=bool(link.get("rtscts", False)),
            xonxoff=bool(link.get("xonxoff", False)),
            timeout=float(link.get("timeout", 0.5)),
        ),
        host=HostRuntime(
            read_chunk_size=int(host.get("read_chunk_size", 256)),
            notification_history=int(host.get("notification_history", 50)),
            stats_log_interval=float(host.get("stats_log_interval", 30.0)),
        ),
        display=DisplayConfig(
            quality_good=float(display.get("quality_good", 80.0)),
            quality_fair=float(display.get("quality_fair", 60.0)),
            blink_strong=float(display.get("blink_strong", 0.3)),
            blink_weak=float(display.get("blink_weak", 0.1)),
            calibration_seconds=int(display.get("calibration_seconds", 3)),
        ),
        interaction=InteractionConfig(
            require_active_menu=bool(interaction.get("require_active_menu", False)),
        ),
        output_csv=Path(merged["output_csv"]) if merged.get("output_csv") else None,
    )
    return config.validate()


def _apply_override(data: Dict[str, Any], item: str) -> None:
    key, sep, raw_value = item.partition("=")
    key = key.strip()
    if not sep:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    if not key:
        raise ValueError("Override key may not be empty")
    *sections, leaf = key.split(".")
    node = data
    for name in sections:
        child = node.get(name)
        if not isinstance(child, dict):
            # a scalar in the way is replaced by the section the key names
            child = node[name] = {}
        node = child
    node[leaf] = _override_value(raw_value.strip())


def _override_value(raw: str) -> Any:
    """JSON literals (numbers, booleans, lists, objects) are decoded, anything else stays a string."""
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        return json.loads(raw)
    except ValueError:
        return raw
