"""Live one-line status display for a terminal."""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from typing import TextIO

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

KNRM = "\x1b[0m"
KRED = "\x1b[31m"
KGRN = "\x1b[32m"
KYEL = "\x1b[33m"
KBLU = "\x1b[34m"
KMAG = "\x1b[35m"
KCYN = "\x1b[36m"
KWHT = "\x1b[37m"
WRAP_DISABLE = "\x1b[?7l"
WRAP_ENABLE = "\x1b[?7h"

COLOURS = (KYEL, KCYN, KGRN, KMAG)

_MODE_COLOURS = {
    FlightMode.IDLE: KYEL,
    FlightMode.AP_CTRL: KCYN,
    FlightMode.YP_TEST: KCYN,
    FlightMode.YP_STABILIZE_AP: KCYN,
}

_XBEE_FIELDS = ("x", "y", "z", "qx", "qy", "qz", "qw")


def flight_mode_text(mode) -> str:
    """Coloured name of a flight mode."""
    try:
        mode = FlightMode(mode)
    except ValueError:
        raise ValueError(f"unknown flight mode {mode!r}") from None
    return f"{_MODE_COLOURS[mode]}{mode.name}{KNRM}"


def flight_status_text(status) -> str:
    """Coloured name of a flight status."""
    try:
        status = FlightStatus(status)
    except ValueError:
        raise ValueError(f"unknown flight status {status!r}") from None
    colour = KYEL if status == FlightStatus.WAIT else KCYN
    return f"{colour}| {status.name}{KNRM}"


class ColourCycle:
    """Cycles through the column colours."""

    def __init__(self, colours=COLOURS):
        self.colours = tuple(colours)
        if not self.colours:
            raise ValueError("need at least one colour")
        self.current = 0

    def next(self) -> str:
        """The next colour, wrapping round at the end."""
        last = len(self.colours) - 1
        if self.current >= last:
            self.current = 0
            return self.colours[last]
        self.current += 1
        return self.colours[self.current - 1]

    def reset(self) -> None:
        """Start again from the first colour."""
        self.current = 0


class StatusPrinter:
    """Writes a header and a continuously refreshed status line."""

    def __init__(self, settings: Settings, stream: TextIO | None = None):
        self.settings = settings
        self.stream = stream if stream is not None else sys.stdout
        self.colours = ColourCycle()

    def _emit(self, text: str) -> str:
        self.stream.write(text)
        self.stream.flush()
        return text

    def header(self) -> str:
        """Write the column header and return it."""
        s = self.settings
        c = self.colours
        c.reset()
        parts = ["\n"]
        if s.printf_arm:
            parts.append("  arm   |")
        if s.printf_battery:
            parts.append(f"{c.next()} v_batt |v_jack|")
        if s.printf_altitude:
            parts.append(f"{c.next()} alt(m) |altdot|")
        if s.printf_proj_ap:
            parts.append(f"{c.next()}altacc|AP(m)|")
        if s.printf_rpy:
            parts.append(f"{c.next()} roll|pitch| yaw |")
        if s.printf_setpoint:
            parts.append(f"{c.next()}  sp_a | sp_r| sp_p| sp_y|")
        if s.printf_u:
            parts.append(f"{c.next()} U0X | U1Y | U2Z | U3r | U4p | U5y |")
        if s.printf_xbee:
            parts.append(
                f"{c.next()} x_xb | y_xb | z_xb | qx_xb | qy_xb | qz_xb | qw_xb |"
            )
        if s.printf_rev:
            parts.append(f"{c.next()} rev1 | rev2 | rev3 | rev4 ")
        parts.append(KNRM)
        if s.printf_mode:
            parts.append("   MODE ")
        if s.printf_status:
            parts.append("   FLIGHT STATUS ")
        if s.printf_counter:
            parts.append(" counter ")
        parts.append("\n")
        return self._emit("".join(parts))

    def line(
        self,
        feedback_state: FeedbackState,
        state_estimate: StateEstimate,
        setpoint: Setpoint,
        user_input: UserInput,
        flight_status: FlightStatus,
        xbee=None,
    ) -> str:
        """Write one status line, overwriting the previous one, and return it."""
        s = self.settings
        se = state_estimate
        sp = setpoint
        c = self.colours
        parts = ["\r"]
        if s.printf_arm:
            if feedback_state.arm_state == ArmState.ARMED:
                parts.append(f"{KRED} ARMED {KNRM} |")
            else:
                parts.append(f"{KGRN}DISARMED{KNRM}|")
        c.reset()
        if s.printf_battery:
            parts.append(f"{c.next()}{se.v_batt_lp:+5.2f} |{se.v_batt_lp_jack:+5.2f} |")
        if s.printf_altitude:
            parts.append(f"{c.next()}{se.alt_bmp:+5.2f} |{se.alt_bmp_vel:+5.2f} |")
        if s.printf_proj_ap:
            parts.append(f"{c.next()}{se.alt_bmp_accel:+5.2f} |{se.proj_ap:+5.2f} |")
        if s.printf_rpy:
            parts.append(KCYN)
            parts.append(f"{c.next()}{se.roll:+5.2f}|{se.pitch:+5.2f}|{se.yaw:+5.2f}|")
        if s.printf_setpoint:
            parts.append(
                f"{c.next()}{sp.Z:+5.2f}|{sp.roll:+5.2f}|{sp.pitch:+5.2f}|{sp.yaw:+5.2f}|"
            )
        if s.printf_u:
            parts.append(c.next() + "".join(f"{u:+5.2f}|" for u in feedback_state.u[:6]))
        parts.append(KNRM)
        if s.printf_xbee:
            x, y, z, qx, qy, qz, qw = (float(getattr(xbee, name, 0.0)) for name in _XBEE_FIELDS)
            parts.append(
                f"{c.next()}{x:+5.2f} |{y:+5.2f} |{z:+5.2f} | {qx:+5.2f} | "
                f"{qy:+5.2f} | {qz:+5.2f} | {qw:+5.2f} |"
            )
        if s.printf_rev:
            parts.extend(f"{rev:10d}|" for rev in se.rev[:4])
        if s.printf_mode:
            parts.append(flight_mode_text(user_input.flight_mode))
        if s.printf_status:
            parts.append(flight_status_text(flight_status))
        if s.printf_counter:
            parts.append(f"{se.counter} ")
        return self._emit("".join(parts))

    def run(
        self,
        snapshot: Callable[[], tuple],
        should_stop: Callable[[], bool],
        hz: float = 10.0,
    ) -> None:
        """Print the header, then a status line at hz until should_stop() is true.

        snapshot returns the arguments of line() as a tuple.
        """
        if hz <= 0:
            raise ValueError(f"hz must be positive, got {hz}")
        self._emit("\nRocket Control System is initialized.\n")
        self._emit("Waiting for the remote arming sequence...\n\n")
        self._emit(WRAP_DISABLE)
        self.header()
        try:
            while not should_stop():
                self.line(*snapshot())
                time.sleep(1.0 / hz)
        finally:
            self._emit(WRAP_ENABLE)