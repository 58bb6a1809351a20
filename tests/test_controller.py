from __future__ import annotations

import io

from bioblink.device.config import load_config
from bioblink.device.controller import BlinkController
from bioblink.device.notify import Severity
from bioblink.device.protocol import INT_MAX, EventKind, decode_line
from bioblink.device.state import CalibrationPhase, CalibrationState, TelemetrySnapshot
from bioblink.device.transport import SerialUnavailableError, StreamTransport, TransportError

FULL_METRICS = "DATA:1.0,2.0,3.0,0.5,1.2,87.5,1,3,1"


class ScriptedTransport:
    """Transport double replaying (chunk, is_final) pairs, then optionally failing."""

    def __init__(self, chunks, *, fail_with=None, open_error=None):
        self._chunks = list(chunks)
        self._fail_with = fail_with
        self._open_error = open_error
        self.opened = 0
        self.releases = 0
        self.closed = False

    @property
    def description(self) -> str:
        return "scripted"

    def open(self) -> None:
        self.opened += 1
        if self._open_error is not None:
            raise self._open_error

    def read(self):
        if self._chunks:
            return self._chunks.pop(0)
        if self._fail_with is not None:
            raise self._fail_with
        return "", True

    def release(self) -> None:
        self.releases += 1
        if not self.closed:
            self.closed = True


def _messages(controller: BlinkController, severity: Severity | None = None) -> list[str]:
    return [
        entry.message
        for entry in controller.notifications.entries()
        if severity is None or entry.severity is severity
    ]


def test_metrics_line_replaces_snapshot():
    controller = BlinkController()
    controller.feed(FULL_METRICS + "\n")
    assert controller.telemetry.snapshot == TelemetrySnapshot(
        raw_signal=1.0,
        filtered_signal=2.0,
        envelope=3.0,
        threshold=0.5,
        baseline=1.2,
        signal_quality=87.5,
        menu_active=True,
        focus_option=3,
        calibrated=True,
    )
    assert _messages(controller) == []


def test_short_metrics_line_leaves_state_untouched():
    controller = BlinkController()
    controller.feed(FULL_METRICS + "\n")
    before = controller.snapshot()
    events = controller.feed("DATA:1,2,3\n")
    assert [event.kind for event in events] == [EventKind.UNKNOWN]
    assert controller.snapshot() == before
    warnings = _messages(controller, Severity.WARNING)
    assert len(warnings) == 1
    assert "short metrics record" in warnings[0]


def test_malformed_progress_falls_back_and_warns():
    controller = BlinkController()
    controller.feed("CALIBRATION_STARTED\nCALIBRATION_PROGRESS:abc\n")
    assert controller.calibration.state == CalibrationState(CalibrationPhase.IN_PROGRESS, 0)
    assert any("calibration_progress" in message for message in _messages(controller, Severity.WARNING))


def test_calibration_sequence_sets_calibrated_flag():
    controller = BlinkController()
    seen = []
    for line in ("CALIBRATION_STARTED", "CALIBRATION_PROGRESS:0", "CALIBRATION_PROGRESS:1", "CALIBRATION_COMPLETE"):
        controller.process_line(line)
        seen.append(controller.calibration.state)
    assert seen == [
        CalibrationState(CalibrationPhase.IN_PROGRESS, 0),
        CalibrationState(CalibrationPhase.IN_PROGRESS, 0),
        CalibrationState(CalibrationPhase.IN_PROGRESS, 1),
        CalibrationState(CalibrationPhase.COMPLETE, 1),
    ]
    assert controller.telemetry.snapshot.calibrated is True
    assert "Calibration: 2/3 seconds" in _messages(controller)
    assert _messages(controller, Severity.SUCCESS) == ["Calibration complete - system ready"]

    controller.process_line("CALIBRATION_STARTED")
    assert controller.calibration.state == CalibrationState(CalibrationPhase.IN_PROGRESS, 0)


def test_metrics_lines_do_not_drive_calibration():
    controller = BlinkController()
    controller.process_line(FULL_METRICS)
    assert controller.calibration.state.phase is CalibrationPhase.IDLE


def test_menu_timeout_is_distinguishable_from_deactivation():
    timed_out = BlinkController()
    deactivated = BlinkController()
    for controller, last in ((timed_out, "MENU_TIMEOUT"), (deactivated, "MENU_DEACTIVATED")):
        controller.feed(f"MENU_ACTIVATED\nFOCUS_OPTION:2\n{last}\n")
        assert controller.interaction.state.menu_active is False
        assert controller.interaction.state.focused_option == 2
    assert timed_out.interaction.state == deactivated.interaction.state
    assert timed_out.notifications.entries()[-1].message == "Menu timeout"
    assert timed_out.notifications.entries()[-1].severity is Severity.WARNING
    assert deactivated.notifications.entries()[-1].message == "Menu deactivated"
    assert deactivated.notifications.entries()[-1].severity is Severity.INFO


def test_selection_survives_menu_sessions():
    controller = BlinkController()
    controller.feed("MENU_ACTIVATED\nOPTION_SELECTED:3\nMENU_TIMEOUT\nMENU_ACTIVATED\nFOCUS_OPTION:1\n")
    state = controller.interaction.state
    assert state.menu_active is True
    assert state.focused_option == 1
    assert state.last_selection == 3


def test_blink_hints_only_notify():
    controller = BlinkController()
    before = controller.snapshot()
    controller.feed("SINGLE_BLINK_FOCUS\nDOUBLE_BLINK_SELECT\nVALID_BLINK:1\nINVALID_BLINK:2\n")
    assert controller.snapshot() == before
    assert _messages(controller) == [
        "Single blink - focus cycling",
        "Double blink - select",
        "Valid blink detected",
        "Invalid blink",
    ]
    assert controller.notifications.entries()[-1].severity is Severity.WARNING


def test_signal_quality_line_updates_only_quality():
    controller = BlinkController()
    controller.process_line(FULL_METRICS)
    controller.process_line("SIGNAL_QUALITY:42")
    snapshot = controller.telemetry.snapshot
    assert snapshot.signal_quality == 42.0
    assert snapshot.envelope == 3.0


def test_replaying_each_event_twice_is_safe():
    lines = [
        "CALIBRATION_STARTED",
        "CALIBRATION_PROGRESS:1",
        "CALIBRATION_COMPLETE",
        "MENU_ACTIVATED",
        "FOCUS_OPTION:2",
        "OPTION_SELECTED:2",
        FULL_METRICS,
        "SIGNAL_QUALITY:50",
        "MENU_DEACTIVATED",
    ]
    once = BlinkController()
    twice = BlinkController()
    for line in lines:
        once.process_line(line)
        event = decode_line(line)
        twice.apply(event)
        twice.apply(event)
    assert once.snapshot() == twice.snapshot()


def test_require_active_menu_option():
    controller = BlinkController(load_config(None, ["interaction.require_active_menu=true"]))
    controller.feed("FOCUS_OPTION:4\nOPTION_SELECTED:4\n")
    assert controller.interaction.state.focused_option == 1
    assert controller.interaction.state.last_selection is None
    assert len(_messages(controller, Severity.WARNING)) == 2


def test_subscriber_errors_do_not_stop_processing():
    controller = BlinkController()
    received = []

    def broken(event, snapshot):
        raise RuntimeError("boom")

    controller.subscribe(broken)
    controller.subscribe(lambda event, snapshot: received.append((event.kind, snapshot.telemetry.envelope)))
    controller.feed(FULL_METRICS + "\nMENU_ACTIVATED\n")
    assert received == [(EventKind.METRICS, 3.0), (EventKind.MENU_ACTIVATED, 3.0)]


def test_notification_history_is_bounded():
    controller = BlinkController(load_config(None, ["host.notification_history=5"]))
    controller.feed("VALID_BLINK:1\n" * 12)
    assert len(controller.notifications) == 5


def test_stats_count_lines_per_kind():
    controller = BlinkController()
    controller.feed(f"{FULL_METRICS}\n{FULL_METRICS}\nnoise\n")
    stats = controller.stats()
    assert stats["lines"] == 3
    assert stats["metrics"] == 2
    assert stats["unknown"] == 1


def test_run_processes_stream_until_end():
    transport = ScriptedTransport(
        [("CALIBRATION_STA", False), ("RTED\nCALIBRATION_COMPLETE\nDATA:1,2,3,4", False), (",5,6,1,2,1", False)]
    )
    controller = BlinkController()
    ticks = []
    assert controller.run(transport, on_tick=lambda: ticks.append(controller.connected)) is True
    assert controller.calibration.state.phase is CalibrationPhase.COMPLETE
    # the unterminated tail is flushed at end-of-stream
    assert controller.telemetry.snapshot.focus_option == 2
    assert controller.connected is False
    assert transport.releases == 1
    assert all(ticks)
    assert _messages(controller, Severity.SUCCESS)[0] == "Connected to scripted"
    assert _messages(controller)[-1] == "Disconnected from scripted"


def test_run_reports_transport_failure_once_and_releases():
    transport = ScriptedTransport([("MENU_ACTIVATED\nDATA:1,2", False)], fail_with=TransportError("device lost"))
    controller = BlinkController()
    assert controller.run(transport) is False
    errors = _messages(controller, Severity.ERROR)
    assert errors == ["Serial communication error: device lost"]
    assert controller.interaction.state.menu_active is True
    # partial line after a failure is discarded, not decoded
    assert controller.stats()["lines"] == 1
    assert transport.releases == 1
    assert controller.connected is False


def test_run_reports_connection_failure():
    transport = ScriptedTransport([], open_error=TransportError("port busy"))
    controller = BlinkController()
    assert controller.run(transport) is False
    assert _messages(controller, Severity.ERROR) == ["Connection failed: port busy"]
    assert transport.releases == 1


def test_run_reports_missing_serial_capability():
    transport = ScriptedTransport([], open_error=SerialUnavailableError("pyserial missing"))
    controller = BlinkController()
    assert controller.run(transport) is False
    errors = _messages(controller, Severity.ERROR)
    assert len(errors) == 1
    assert errors[0].startswith("Serial access not supported")
    assert transport.opened == 1


def test_stop_ends_the_loop():
    controller = BlinkController()
    chunks = [("MENU_ACTIVATED\n", False)] * 10
    transport = ScriptedTransport(chunks)
    controller.run(transport, on_tick=controller.stop)
    assert controller.stats()["lines"] == 1
    assert transport.releases == 1


def test_run_with_stream_transport():
    stream = io.StringIO("MENU_ACTIVATED\r\nOPTION_SELECTED:2\r\nMENU_TIMEOUT\r\n")
    controller = BlinkController()
    assert controller.run(StreamTransport(stream, chunk_size=7)) is True
    assert controller.interaction.state.last_selection == 2
    assert controller.interaction.state.menu_active is False


def test_notification_listeners_receive_every_entry():
    controller = BlinkController()
    seen = []
    controller.notifications.add_listener(lambda entry: seen.append((entry.message, entry.severity)))
    controller.notifications.add_listener(lambda entry: 1 / 0)
    controller.feed("OPTION_SELECTED:2\nnoise\n")
    assert seen[0] == ("Option 2 selected", Severity.SUCCESS)
    assert seen[1][1] is Severity.WARNING
    assert seen[1][0].startswith("Could not decode line (unrecognised line): 'noise'")


def test_oversized_payloads_do_not_stop_the_stream():
    stream = io.StringIO(
        "FOCUS_OPTION:" + "9" * 5000 + "\n"
        "DATA:1,2,3,4,5,6,1," + "7" * 5000 + ",1\n"
        "CALIBRATION_STARTED\n"
        "CALIBRATION_PROGRESS:" + "9" * 5000 + "\n"
        "MENU_ACTIVATED\n"
    )
    controller = BlinkController()
    assert controller.run(StreamTransport(stream)) is True
    snapshot = controller.snapshot()
    assert snapshot.interaction.menu_active is True
    assert snapshot.interaction.focused_option == INT_MAX
    assert snapshot.telemetry.focus_option == INT_MAX
    assert snapshot.calibration.seconds_elapsed == INT_MAX
    assert controller.stats()["lines"] == 5
    assert len(_messages(controller, Severity.WARNING)) == 3
