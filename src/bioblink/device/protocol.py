"""
Decoder for the newline-delimited text protocol spoken by the blink firmware.

Every line maps to exactly one `ProtocolEvent`. Classification walks `LINE_RULES`
in order and the first match wins, so the table order is part of the protocol:
some tokens may appear inside otherwise unrelated lines. Decoding is total: a
line that matches nothing, or a metrics record that is too short, decodes to an
`UNKNOWN` event, and individual malformed fields fall back to defaults with a
note in `ProtocolEvent.issues`.
"""

from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .state import TelemetrySnapshot

logger = logging.getLogger(__name__)

METRICS_FIELDS = (
    "raw_signal",
    "filtered_signal",
    "envelope",
    "threshold",
    "baseline",
    "signal_quality",
    "menu_active",
    "focus_option",
    "calibrated",
)
QUALITY_MIN = 0.0
QUALITY_MAX = 100.0
DEFAULT_OPTION = 1
# integer payloads are 32-bit signed on the firmware side
INT_MIN = -(2**31)
INT_MAX = 2**31 - 1
_INT_DIGITS_MAX = len(str(INT_MAX))

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class EventKind(str, enum.Enum):
    CALIBRATION_STARTED = "calibration_started"
    CALIBRATION_COMPLETE = "calibration_complete"
    CALIBRATION_PROGRESS = "calibration_progress"
    MENU_ACTIVATED = "menu_activated"
    MENU_DEACTIVATED = "menu_deactivated"
    MENU_TIMEOUT = "menu_timeout"
    FOCUS_CHANGED = "focus_changed"
    OPTION_SELECTED = "option_selected"
    SINGLE_BLINK = "single_blink"
    DOUBLE_BLINK = "double_blink"
    VALID_BLINK = "valid_blink"
    INVALID_BLINK = "invalid_blink"
    METRICS = "metrics"
    SIGNAL_QUALITY = "signal_quality"
    UNKNOWN = "unknown"


class MatchMode(str, enum.Enum):
    CONTAINS = "contains"
    PREFIX = "prefix"


@dataclass(frozen=True)
class LineRule:
    mode: MatchMode
    token: str
    kind: EventKind

    def matches(self, line: str) -> bool:
        if self.mode is MatchMode.PREFIX:
            return line.startswith(self.token)
        return self.token in line


LINE_RULES: Tuple[LineRule, ...] = (
    LineRule(MatchMode.CONTAINS, "CALIBRATION_STARTED", EventKind.CALIBRATION_STARTED),
    LineRule(MatchMode.CONTAINS, "CALIBRATION_COMPLETE", EventKind.CALIBRATION_COMPLETE),
    LineRule(MatchMode.PREFIX, "CALIBRATION_PROGRESS:", EventKind.CALIBRATION_PROGRESS),
    LineRule(MatchMode.CONTAINS, "MENU_ACTIVATED", EventKind.MENU_ACTIVATED),
    LineRule(MatchMode.CONTAINS, "MENU_DEACTIVATED", EventKind.MENU_DEACTIVATED),
    LineRule(MatchMode.CONTAINS, "MENU_TIMEOUT", EventKind.MENU_TIMEOUT),
    LineRule(MatchMode.PREFIX, "FOCUS_OPTION:", EventKind.FOCUS_CHANGED),
    LineRule(MatchMode.PREFIX, "OPTION_SELECTED:", EventKind.OPTION_SELECTED),
    LineRule(MatchMode.CONTAINS, "SINGLE_BLINK_FOCUS", EventKind.SINGLE_BLINK),
    LineRule(MatchMode.CONTAINS, "DOUBLE_BLINK_SELECT", EventKind.DOUBLE_BLINK),
    LineRule(MatchMode.PREFIX, "VALID_BLINK:", EventKind.VALID_BLINK),
    LineRule(MatchMode.PREFIX, "INVALID_BLINK:", EventKind.INVALID_BLINK),
    LineRule(MatchMode.PREFIX, "DATA:", EventKind.METRICS),
    LineRule(MatchMode.PREFIX, "SIGNAL_QUALITY:", EventKind.SIGNAL_QUALITY),
)


@dataclass(frozen=True)
class ProtocolEvent:
    """
    One decoded line. `value` carries the integer or float payload of the
    progress/focus/selection/quality variants, `telemetry` the full record of
    a metrics line. `issues` lists every fallback applied while decoding.
    """

    kind: EventKind
    line: str
    value: Optional[float] = None
    telemetry: Optional[TelemetrySnapshot] = None
    issues: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.kind is not EventKind.UNKNOWN and not self.issues

    @property
    def option(self) -> int:
        return int(self.value) if self.value is not None else DEFAULT_OPTION


def classify_line(line: str) -> EventKind:
    for rule in LINE_RULES:
        if rule.matches(line):
            return rule.kind
    return EventKind.UNKNOWN


def decode_line(line: str) -> ProtocolEvent:
    kind = classify_line(line)
    if kind is EventKind.UNKNOWN:
        return ProtocolEvent(EventKind.UNKNOWN, line, issues=("unrecognised line",))
    decoder = _PAYLOAD_DECODERS.get(kind)
    if decoder is None:
        return ProtocolEvent(kind, line)
    event = decoder(line)
    if event.issues:
        logger.debug("Decoded %s with fallbacks %s: %r", event.kind.value, list(event.issues), line)
    return event


def parse_int(text: str, default: int, label: str, issues: List[str]) -> int:
    match = _INT_PREFIX.match(text)
    if match is None:
        issues.append(f"{label}: non-numeric {_short(text)}, using {default}")
        return default
    digits = match.group(1)
    negative = digits.startswith("-")
    # checked before int() so oversized runs never reach the str-to-int digit limit
    if len(digits.lstrip("+-").lstrip("0")) > _INT_DIGITS_MAX:
        value = INT_MIN if negative else INT_MAX
        issues.append(f"{label}: {_short(digits)} out of range, using {value}")
        return value
    value = int(digits)
    if not INT_MIN <= value <= INT_MAX:
        bounded = min(max(value, INT_MIN), INT_MAX)
        issues.append(f"{label}: {value} out of range, using {bounded}")
        return bounded
    return value


def parse_float(text: str, default: float, label: str, issues: List[str]) -> float:
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        issues.append(f"{label}: non-numeric {_short(text)}, using {default:g}")
        return default
    value = float(match.group(1))
    if not math.isfinite(value):
        issues.append(f"{label}: non-finite {_short(text)}, using {default:g}")
        return default
    return value


def _short(text: str, limit: int = 24) -> str:
    if len(text) <= limit:
        return repr(text)
    return f"{text[:limit]!r}... ({len(text)} chars)"


def _parse_option(text: str, label: str, issues: List[str]) -> int:
    option = parse_int(text, DEFAULT_OPTION, label, issues)
    if option < DEFAULT_OPTION:
        issues.append(f"{label}: option {option} is not positive, using {DEFAULT_OPTION}")
        return DEFAULT_OPTION
    return option


def _clamp_quality(value: float) -> float:
    return min(max(value, QUALITY_MIN), QUALITY_MAX)


def _colon_payload(line: str) -> str:
    parts = line.split(":")
    return parts[1] if len(parts) > 1 else ""


def _decode_progress(line: str) -> ProtocolEvent:
    issues: List[str] = []
    seconds = parse_int(_colon_payload(line), 0, "calibration progress", issues)
    return ProtocolEvent(EventKind.CALIBRATION_PROGRESS, line, value=seconds, issues=tuple(issues))


def _decode_focus(line: str) -> ProtocolEvent:
    issues: List[str] = []
    option = _parse_option(_colon_payload(line), "focus option", issues)
    return ProtocolEvent(EventKind.FOCUS_CHANGED, line, value=option, issues=tuple(issues))


def _decode_selection(line: str) -> ProtocolEvent:
    issues: List[str] = []
    option = _parse_option(_colon_payload(line), "selected option", issues)
    return ProtocolEvent(EventKind.OPTION_SELECTED, line, value=option, issues=tuple(issues))


def _decode_signal_quality(line: str) -> ProtocolEvent:
    issues: List[str] = []
    quality = parse_float(_colon_payload(line), 0.0, "signal quality", issues)
    return ProtocolEvent(EventKind.SIGNAL_QUALITY, line, value=_clamp_quality(quality), issues=tuple(issues))


def _decode_metrics(line: str) -> ProtocolEvent:
    values = line[len("DATA:") :].split(",")
    if len(values) < len(METRICS_FIELDS):
        # A partial record must never reach the telemetry state.
        return ProtocolEvent(
            EventKind.UNKNOWN,
            line,
            issues=(f"short metrics record ({len(values)} of {len(METRICS_FIELDS)} fields)",),
        )
    issues: List[str] = []
    floats = [parse_float(values[idx], 0.0, METRICS_FIELDS[idx], issues) for idx in range(6)]
    telemetry = TelemetrySnapshot(
        raw_signal=floats[0],
        filtered_signal=floats[1],
        envelope=floats[2],
        threshold=floats[3],
        baseline=floats[4],
        signal_quality=_clamp_quality(floats[5]),
        menu_active=values[6] == "1",
        focus_option=_parse_option(values[7], "focus_option", issues),
        calibrated=values[8] == "1",
    )
    return ProtocolEvent(EventKind.METRICS, line, telemetry=telemetry, issues=tuple(issues))


_PAYLOAD_DECODERS: Dict[EventKind, Callable[[str], ProtocolEvent]] = {
    EventKind.CALIBRATION_PROGRESS: _decode_progress,
    EventKind.FOCUS_CHANGED: _decode_focus,
    EventKind.OPTION_SELECTED: _decode_selection,
    EventKind.SIGNAL_QUALITY: _decode_signal_quality,
    EventKind.METRICS: _decode_metrics,
}
