"""Flight-phase detection and setpoint selection for the feedback controllers."""

from __future__ import annotations

import dataclasses
import logging

from rocketctl.feedback import Feedback
from rocketctl.hardware import Hardware, elapsed_s
from rocketctl.models import (
    ArmState,
    Events,
    FlightMode,
    FlightStatus,
    Settings,
    Setpoint,
    StateEstimate,
    UserInput,
)
from rocketctl.servos import PreflightTest, ServoError, Servos

logger = logging.getLogger(__name__)


class SetpointError(RuntimeError):
    """Raised when the setpoint manager cannot run."""


class SetpointManager:
    """Tracks the flight phase and sets which controllers run and what they aim for."""

    def __init__(
        self,
        settings: Settings,
        state_estimate: StateEstimate,
        user_input: UserInput,
        feedback: Feedback,
        servos: Servos,
        hardware: Hardware,
        alt_max_error: float,
        preflight: PreflightTest | None = None,
    ):
        if alt_max_error <= 0.0:
            raise ValueError(f"alt_max_error must be positive, got {alt_max_error}")
        self.settings = settings
        self.state_estimate = state_estimate
        self.user_input = user_input
        self.feedback = feedback
        self.servos = servos
        self.hardware = hardware
        self.alt_max_error = float(alt_max_error)
        self.preflight = preflight
        self.flight_status = FlightStatus.WAIT

    @property
    def setpoint(self) -> Setpoint:
        return self.feedback.setpoint

    @property
    def events(self) -> Events:
        return self.feedback.events

    def _elapsed(self, start_ns: int) -> float:
        return elapsed_s(self.hardware, start_ns)

    def init(self) -> None:
        """Clear the setpoint and start in the WAIT phase with controllers idle."""
        sp = self.setpoint
        if sp.initialized:
            raise SetpointError("setpoint manager already initialized")
        blank = Setpoint()
        for f in dataclasses.fields(Setpoint):
            setattr(sp, f.name, getattr(blank, f.name))
        self.flight_status = FlightStatus.WAIT
        self.events.burnout_fl = False
        self.events.ignition_fl = False
        self.user_input.flight_mode = FlightMode.IDLE
        sp.init_time = self.hardware.nanos()
        sp.initialized = True

    def update_apogee_setpoint(self) -> None:
        """Set the altitude setpoint to the projected apogee, held within the error band."""
        target = self.settings.target_altitude_m
        proj = self.state_estimate.proj_ap
        self.setpoint.alt = min(max(proj, target - self.alt_max_error), target + self.alt_max_error)

    def _return_to_nominal(self) -> None:
        try:
            self.servos.return_to_nominal()
        except ServoError as exc:
            logger.error("could not return servos to nominal: %s", exc)

    def _update_standby(self) -> None:
        s, se, ev = self.settings, self.state_estimate, self.events
        launching = (
            abs(se.alt_bmp_accel) >= s.event_launch_accel
            and abs(se.alt_bmp - ev.ground_alt) >= s.event_launch_dh
        )
        if not ev.ignition_fl and launching:
            ev.init_time = self.hardware.nanos()
            ev.ignition_alt = se.alt_bmp
            ev.ignition_fl = True
        elif ev.ignition_fl and self._elapsed(ev.init_time) >= s.event_ignition_delay_s:
            if launching and abs(se.alt_bmp - ev.ignition_alt) >= s.event_ignition_dh:
                self.flight_status = FlightStatus.POWERED_ASCENT
                ev.meco_fl = False
            else:
                ev.ignition_fl = False
        elif ev.ignition_fl and launching:
            ev.ignition_fl = True
        else:
            ev.ignition_fl = False

    def _update_powered_ascent(self) -> None:
        s, se, ev = self.settings, self.state_estimate, self.events
        if ev.apogee_alt < se.alt_bmp:
            ev.apogee_alt = se.alt_bmp
        if not ev.ignition_fl:
            logger.warning("POWERED_ASCENT reached without ignition flag")
        burning_out = se.alt_bmp_vel > 0.0 and se.alt_bmp_accel < 0.0
        if not ev.meco_fl and burning_out:
            ev.meco_fl = True
            ev.init_time = self.hardware.nanos()
        elif ev.meco_fl and self._elapsed(ev.init_time) >= s.event_cutoff_delay_s:
            if abs(se.alt_bmp - ev.ground_alt) >= s.event_cutoff_dh and se.alt_bmp_accel <= 0.0:
                self.flight_status = FlightStatus.UNPOWERED_ASCENT
                ev.apogee_fl = False
            else:
                ev.meco_fl = False
        elif ev.meco_fl and burning_out:
            ev.meco_fl = True
        else:
            ev.meco_fl = False

    def _enter_descent(self) -> None:
        ev = self.events
        self.flight_status = FlightStatus.DESCENT_TO_LAND
        ev.land_fl = False
        ev.land_fl_vel = False
        ev.land_alt = self.state_estimate.alt_bmp

    def _update_unpowered_ascent(self) -> None:
        s, se, ev = self.settings, self.state_estimate, self.events
        if not ev.tipover_detected:
            self.user_input.flight_mode = FlightMode.AP_CTRL
        if not ev.apogee_fl and ev.apogee_alt > se.alt_bmp:
            ev.init_time = self.hardware.nanos()
            ev.apogee_fl = True
        elif ev.apogee_fl and self._elapsed(ev.init_time) >= s.event_apogee_delay_s:
            if se.alt_bmp_vel <= 0.0 and abs(se.alt_bmp_accel) < s.event_apogee_accel_tol:
                self._enter_descent()
            elif abs(ev.apogee_alt - se.alt_bmp) > s.event_apogee_dh:
                # late fallback in case the velocity estimate has failed
                self._enter_descent()
        elif not ev.apogee_fl:
            ev.apogee_fl = False

    def _update_descent(self) -> None:
        s, se, ev = self.settings, self.state_estimate, self.events
        self.user_input.flight_mode = FlightMode.IDLE
        self._return_to_nominal()

        low = se.alt_bmp < ev.ground_alt + s.event_start_landing_alt_m
        if low and self.servos.arm_state == ArmState.ARMED:
            try:
                self.servos.disarm()
            except ServoError as exc:
                logger.error("could not disarm servos: %s", exc)

        settled = (
            abs(se.alt_bmp_accel) < s.event_landing_accel_tol
            and abs(se.alt_bmp - ev.land_alt) < s.event_landing_alt_tol
            and low
        )
        if not settled:
            ev.land_fl = False
            ev.land_fl_vel = False
            return

        slow = abs(se.alt_bmp_vel) < s.event_landing_vel_tol
        if not ev.land_fl_vel and slow:
            ev.init_time = self.hardware.nanos()
            ev.land_fl_vel = True
        elif ev.land_fl_vel and slow:
            if self._elapsed(ev.init_time) >= s.event_landing_delay_early_s:
                self.flight_status = FlightStatus.LANDED
        elif not ev.land_fl:
            # altitude-only detection guards against a failed velocity estimate
            ev.init_time_landed = self.hardware.nanos()
            ev.land_fl = True
        elif self._elapsed(ev.init_time_landed) >= s.event_landing_delay_late_s:
            self.flight_status = FlightStatus.LANDED

    def update_flight_status(self) -> None:
        """Detect flight events and advance the flight phase by at most one step."""
        s, se, ev, ui = self.settings, self.state_estimate, self.events, self.user_input

        if ev.tipover_detected:
            ui.flight_mode = FlightMode.IDLE
            self._return_to_nominal()

        if ev.apogee_alt < se.alt_bmp:
            ev.apogee_alt = se.alt_bmp
            ev.apogee_fl = False

        if abs(ev.land_alt - se.alt_bmp) > s.event_landing_alt_tol:
            ev.land_alt = se.alt_bmp
            ev.land_fl = False
            ev.land_fl_vel = False

        if self.feedback.state.arm_state == ArmState.DISARMED:
            self.flight_status = FlightStatus.WAIT
            ui.flight_mode = FlightMode.IDLE
            return

        status = self.flight_status
        if status == FlightStatus.WAIT:
            if ui.requested_arm_mode == ArmState.ARMED:
                if self.servos.arm_state == ArmState.DISARMED:
                    try:
                        self.servos.arm()
                    except ServoError as exc:
                        logger.error("could not arm servos: %s", exc)
            ev.ground_alt = se.alt_bmp
            ev.apogee_alt = se.alt_bmp
            self.flight_status = FlightStatus.STANDBY
        elif status == FlightStatus.STANDBY:
            self._update_standby()
        elif status == FlightStatus.POWERED_ASCENT:
            self._update_powered_ascent()
        elif status == FlightStatus.UNPOWERED_ASCENT:
            self._update_unpowered_ascent()
        elif status == FlightStatus.DESCENT_TO_LAND:
            self._update_descent()
        elif status == FlightStatus.LANDED:
            ui.flight_mode = FlightMode.IDLE
            ui.requested_arm_mode = ArmState.DISARMED
        elif status == FlightStatus.TEST:
            ui.flight_mode = FlightMode.YP_TEST
        else:
            raise SetpointError(f"unknown flight status {status!r}")

    def _run_preflight(self) -> None:
        pf = self.preflight
        if pf is None or not self.user_input.run_preflight_checks:
            return
        if pf.result == 0 or not pf.initialized:
            try:
                if pf.result == 0:
                    pf.step()
            except ServoError as exc:
                logger.error("failed to run pre-flight checks: %s", exc)
                return
            if pf.result == 1:
                logger.info("Pre-flight check complete")
            elif pf.result == -1:
                logger.error("pre-flight check failed")

    def _configure(self, alt: bool, py: bool) -> None:
        sp = self.setpoint
        sp.en_alt_ctrl = alt
        sp.en_r_ctrl = False
        sp.en_py_ctrl = py
        sp.clear_attitude()

    def update(self, running: bool) -> None:
        """Run one cycle; running is False while the system is paused or stopping."""
        sp, ui = self.setpoint, self.user_input
        if not sp.initialized:
            raise SetpointError("setpoint manager not initialized yet")
        if not ui.initialized:
            raise SetpointError("input manager not initialized yet")

        self.update_flight_status()
        self._run_preflight()

        if not running:
            return

        if ui.requested_arm_mode == ArmState.DISARMED:
            if self.feedback.state.arm_state != ArmState.DISARMED:
                self.feedback.disarm()
            if self.servos.arm_state != ArmState.DISARMED:
                try:
                    self.servos.disarm()
                except ServoError as exc:
                    logger.error("could not disarm servos: %s", exc)
            return

        mode = ui.flight_mode
        if mode == FlightMode.IDLE:
            self._configure(alt=False, py=False)
            sp.alt = 0.0
        elif mode == FlightMode.AP_CTRL:
            self._configure(alt=True, py=False)
            self.update_apogee_setpoint()
        elif mode == FlightMode.YP_TEST:
            self._configure(alt=False, py=True)
        elif mode == FlightMode.YP_STABILIZE_AP:
            self._configure(alt=True, py=True)
            self.update_apogee_setpoint()
        else:
            logger.error("unknown flight mode %r", mode)

        if ui.requested_arm_mode == ArmState.ARMED:
            if self.feedback.state.arm_state == ArmState.DISARMED:
                self.feedback.arm()
            if self.servos.arm_state == ArmState.DISARMED:
                try:
                    self.servos.arm()
                except ServoError as exc:
                    logger.error("could not arm servos: %s", exc)

    def cleanup(self) -> None:
        """Mark the setpoint manager uninitialized."""
        self.setpoint.initialized = False