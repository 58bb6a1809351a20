"""
Serial line-protocol host for the BioAmp blink firmware.

The subpackage exposes the configuration models, the streaming line splitter,
the protocol decoder, and the state machines the decoded events drive, plus the
controller that ties them to a transport.
"""

from .config import BlinkHostConfig, DisplayConfig, HostRuntime, InteractionConfig, LinkConfig, load_config
from .controller import BlinkController, ControllerSnapshot
from .frames import LineSplitter
from .notify import Notification, NotificationLog, Severity
from .protocol import EventKind, ProtocolEvent, classify_line, decode_line
from .state import (
    CalibrationMachine,
    CalibrationPhase,
    CalibrationState,
    InteractionMachine,
    InteractionState,
    TelemetrySnapshot,
    TelemetryState,
)
from .transport import SerialTransport, SerialUnavailableError, StreamTransport, TransportError

__all__ = [
    "BlinkHostConfig",
    "DisplayConfig",
    "HostRuntime",
    "InteractionConfig",
    "LinkConfig",
    "load_config",
    "BlinkController",
    "ControllerSnapshot",
    "LineSplitter",
    "Notification",
    "NotificationLog",
    "Severity",
    "EventKind",
    "ProtocolEvent",
    "classify_line",
    "decode_line",
    "CalibrationMachine",
    "CalibrationPhase",
    "CalibrationState",
    "InteractionMachine",
    "InteractionState",
    "TelemetrySnapshot",
    "TelemetryState",
    "SerialTransport",
    "SerialUnavailableError",
    "StreamTransport",
    "TransportError",
]
