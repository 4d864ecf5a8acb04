import io

import pytest

from rocketctl.models import (
    ArmState,
    FeedbackState,
    FlightMode,
    FlightStatus,
    Settings,
    Setpoint,
    StateEstimate,
    UserInput,
)
from rocketctl.printf_manager import (
    KCYN,
    KGRN,
    KMAG,
    KNRM,
    KRED,
    KYEL,
    WRAP_DISABLE,
    WRAP_ENABLE,
    ColourCycle,
    StatusPrinter,
    flight_mode_text,
    flight_status_text,
)


def _args(arm=ArmState.DISARMED, **estimate):
    fs = FeedbackState(arm_state=arm)
    return (fs, StateEstimate(**estimate), Setpoint(), UserInput(), FlightStatus.WAIT, None)


def test_colour_cycle_sequence_wraps():
    cycle = ColourCycle()
    assert [cycle.next() for _ in range(6)] == [KYEL, KCYN, KGRN, KMAG, KYEL, KCYN]


def test_colour_cycle_reset():
    cycle = ColourCycle()
    cycle.next()
    cycle.next()
    cycle.reset()
    assert cycle.next() == KYEL


def test_flight_mode_text():
    assert flight_mode_text(FlightMode.IDLE) == f"{KYEL}IDLE{KNRM}"
    assert flight_mode_text(FlightMode.AP_CTRL) == f"{KCYN}AP_CTRL{KNRM}"


def test_flight_status_text():
    assert flight_status_text(FlightStatus.WAIT) == f"{KYEL}| WAIT{KNRM}"
    assert flight_status_text(FlightStatus.LANDED) == f"{KCYN}| LANDED{KNRM}"


def test_unknown_mode_and_status_raise():
    with pytest.raises(ValueError):
        flight_mode_text(99)
    with pytest.raises(ValueError):
        flight_status_text(99)


def test_header_with_nothing_enabled():
    stream = io.StringIO()
    text = StatusPrinter(Settings(), stream).header()
    assert text == "\n" + KNRM + "\n"
    assert stream.getvalue() == text


def test_header_lists_enabled_columns():
    settings = Settings(printf_arm=True, printf_mode=True, printf_counter=True)
    text = StatusPrinter(settings, io.StringIO()).header()
    assert "  arm   |" in text
    assert text.index("   MODE ") < text.index(" counter ")


def test_line_shows_arm_state():
    printer = StatusPrinter(Settings(printf_arm=True), io.StringIO())
    armed = printer.line(*_args(arm=ArmState.ARMED))
    disarmed = printer.line(*_args())
    assert armed.startswith("\r")
    assert f"{KRED} ARMED {KNRM} |" in armed
    assert f"{KGRN}DISARMED{KNRM}|" in disarmed


def test_line_battery_value_and_colour():
    printer = StatusPrinter(Settings(printf_battery=True), io.StringIO())
    text = printer.line(*_args(v_batt_lp=7.4))
    assert text.startswith("\r" + KYEL + "+7.40 |")


def test_line_counter_and_mode():
    settings = Settings(printf_mode=True, printf_counter=True)
    text = StatusPrinter(settings, io.StringIO()).line(*_args(counter=42))
    assert text.endswith(flight_mode_text(FlightMode.IDLE) + "42 ")


def test_line_rev_columns_have_fixed_width():
    printer = StatusPrinter(Settings(printf_rev=True), io.StringIO())
    text = printer.line(*_args(rev=[1, 22, 333, 4444]))
    fields = text.split(KNRM, 1)[1].split("|")[:4]
    assert [len(f) for f in fields] == [10, 10, 10, 10]
    assert [int(f) for f in fields] == [1, 22, 333, 4444]


def test_run_prints_until_stopped():
    stream = io.StringIO()
    printer = StatusPrinter(Settings(printf_counter=True), stream)
    calls = []

    def should_stop():
        calls.append(None)
        return len(calls) > 3

    printer.run(lambda: _args(), should_stop, hz=1000.0)
    out = stream.getvalue()
    assert out.count("\r") == 3
    assert WRAP_DISABLE in out
    assert out.endswith(WRAP_ENABLE)


def test_run_rejects_bad_rate():
    printer = StatusPrinter(Settings(), io.StringIO())
    with pytest.raises(ValueError):
        printer.run(lambda: _args(), lambda: True, hz=0)