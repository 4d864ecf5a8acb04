"""Attitude and altitude feedback controllers driving the actuators."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from rocketctl.hardware import Hardware
from rocketctl.mix import Mixer, MixError
from rocketctl.models import (
    MAX_INPUTS,
    MAX_ROTORS,
    ArmState,
    Channel,
    Events,
    FeedbackState,
    Settings,
    Setpoint,
    StateEstimate,
)
from rocketctl.servos import Servos, ServoError

logger = logging.getLogger(__name__)

LED_RED = "red"
LED_GREEN = "green"

_CONTROLLER_NAMES = ("roll", "pitch", "yaw", "altitude")


class DiscreteFilter:
    """Discrete-time transfer function with optional saturation and soft start.

    Coefficients are in descending powers of z; a numerator shorter than the
    denominator is padded with leading zeros.
    """

    def __init__(self, num: Iterable[float], den: Iterable[float], dt: float, gain: float = 1.0):
        num = [float(c) for c in num]
        den = [float(c) for c in den]
        if not den or den[0] == 0.0:
            raise ValueError("denominator must be non-empty with a non-zero leading coefficient")
        if not num or len(num) > len(den):
            raise ValueError("numerator must be non-empty and no longer than the denominator")
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.num = tuple([0.0] * (len(den) - len(num)) + num)
        self.den = tuple(den)
        self.order = len(den) - 1
        self.dt = float(dt)
        self.gain = float(gain)
        self.sat_en = False
        self.sat_min = 0.0
        self.sat_max = 0.0
        self.ss_en = False
        self.ss_steps = 0.0
        self.reset()

    def reset(self) -> None:
        """Zero the input and output history and restart the step counter."""
        self._inputs: deque[float] = deque([0.0] * (self.order + 1), maxlen=self.order + 1)
        self._outputs: deque[float] = deque([0.0] * self.order, maxlen=self.order)
        self.step = 0
        self.newest_input = 0.0
        self.newest_output = 0.0
        self.saturated = False

    def march(self, x: float) -> float:
        """Feed one input sample and return the new output."""
        x = float(x)
        self._inputs.appendleft(x)
        y = self.gain * sum(b * xi for b, xi in zip(self.num, self._inputs))
        y -= sum(a * yi for a, yi in zip(self.den[1:], self._outputs))
        y /= self.den[0]

        if self.ss_en and self.step < self.ss_steps:
            frac = self.step / self.ss_steps
            y = max(min(y, self.sat_max * frac), self.sat_min * frac)

        self.saturated = False
        if self.sat_en:
            if y > self.sat_max:
                y = self.sat_max
                self.saturated = True
            elif y < self.sat_min:
                y = self.sat_min
                self.saturated = True

        self._outputs.appendleft(y)
        self.newest_input = x
        self.newest_output = y
        self.step += 1
        return y

    def enable_saturation(self, lo: float, hi: float) -> None:
        """Clamp outputs to [lo, hi]."""
        if lo > hi:
            raise ValueError(f"saturation minimum {lo} exceeds maximum {hi}")
        self.sat_en = True
        self.sat_min = float(lo)
        self.sat_max = float(hi)

    def enable_soft_start(self, seconds: float) -> None:
        """Ramp the saturation limits up from zero over the given time after reset."""
        if not self.sat_en:
            raise ValueError("saturation must be enabled before soft start")
        if seconds < 0.0:
            raise ValueError(f"soft start time must not be negative, got {seconds}")
        self.ss_en = True
        self.ss_steps = seconds / self.dt

    def prefill_inputs(self, x: float) -> None:
        """Fill the input history with a constant value."""
        x = float(x)
        self._inputs = deque([x] * (self.order + 1), maxlen=self.order + 1)
        self.newest_input = x

    def prefill_outputs(self, y: float) -> None:
        """Fill the output history with a constant value."""
        y = float(y)
        self._outputs = deque([y] * self.order, maxlen=self.order)
        self.newest_output = y

    def copy(self) -> DiscreteFilter:
        """A filter with the same configuration and fresh history."""
        dup = DiscreteFilter(self.num, self.den, self.dt, self.gain)
        dup.sat_en = self.sat_en
        dup.sat_min = self.sat_min
        dup.sat_max = self.sat_max
        dup.ss_en = self.ss_en
        dup.ss_steps = self.ss_steps
        return dup


@dataclass(frozen=True)
class ControlLimits:
    """Saturation limits and safety thresholds of the feedback loop."""

    roll: float
    pitch: float
    yaw: float
    x: float
    soft_start_seconds: float
    tip_angle: float
    alt_max_error: float


class Feedback:
    """Runs the controllers once per cycle and sends the mixed signals to the servos."""

    def __init__(
        self,
        settings: Settings,
        controllers: Mapping[str, DiscreteFilter],
        limits: ControlLimits,
        state_estimate: StateEstimate,
        setpoint: Setpoint,
        events: Events,
        mixer: Mixer,
        servos: Servos,
        hardware: Hardware,
        motor_map: Callable[[float], float] | None = None,
    ):
        missing = [name for name in _CONTROLLER_NAMES if name not in controllers]
        if missing:
            raise ValueError(f"missing controllers: {', '.join(missing)}")
        self.settings = settings
        self.limits = limits
        self.state_estimate = state_estimate
        self.setpoint = setpoint
        self.events = events
        self.mixer = mixer
        self.servos = servos
        self.hardware = hardware
        self.motor_map = motor_map if motor_map is not None else (lambda m: m)
        self.on_arm: Callable[[], None] | None = None
        self.state = FeedbackState()

        self.roll = controllers["roll"].copy()
        self.pitch = controllers["pitch"].copy()
        self.yaw = controllers["yaw"].copy()
        self.altitude = controllers["altitude"].copy()
        self._gain_orig = {
            Channel.ROLL: self.roll.gain,
            Channel.PITCH: self.pitch.gain,
            Channel.YAW: self.yaw.gain,
            Channel.X: self.altitude.gain,
        }
        for filt, limit in (
            (self.roll, limits.roll),
            (self.pitch, limits.pitch),
            (self.yaw, limits.yaw),
            (self.altitude, 1.0),
        ):
            filt.enable_saturation(-limit, limit)
            filt.enable_soft_start(limits.soft_start_seconds)

        self._last_en_alt_ctrl = False
        self.disarm()
        self.state.initialized = True

    def disarm(self) -> None:
        """Flag the controller disarmed and show the red LED."""
        self.state.arm_state = ArmState.DISARMED
        self.hardware.led_set(LED_RED, True)
        self.hardware.led_set(LED_GREEN, False)

    def arm(self) -> None:
        """Reset every controller and flag the controller armed."""
        if self.state.arm_state == ArmState.ARMED:
            raise RuntimeError("trying to arm when controller is already armed")
        if self.settings.enable_logging and self.on_arm is not None:
            self.on_arm()
        self.state.arm_time_ns = self.hardware.nanos()
        self.state.loop_index = 0
        for filt in (self.roll, self.pitch, self.yaw, self.altitude):
            filt.reset()
        self.pitch.prefill_inputs(-self.state_estimate.pitch)
        self.yaw.prefill_inputs(-self.state_estimate.yaw)
        self.hardware.led_set(LED_RED, False)
        self.hardware.led_set(LED_GREEN, True)
        self.state.arm_state = ArmState.ARMED

    def _bounds(self, ch: Channel, mot: list[float], limit: float) -> tuple[float, float]:
        lo, hi = self.mixer.check_saturation(ch, mot)
        hi = min(hi, limit)
        lo = max(lo, -limit)
        # bounds collapsed around zero would lock the controller out entirely
        if hi < 0.01 * limit and lo > -0.01 * limit:
            lo, hi = -limit, limit
        return lo, hi

    def _run_channel(
        self,
        ch: Channel,
        filt: DiscreteFilter,
        limit: float,
        error: float,
        mot: list[float],
        u: list[float],
    ) -> list[float]:
        try:
            lo, hi = self._bounds(ch, mot, limit)
        except MixError as exc:
            logger.error("skipping %s channel: %s", ch.name, exc)
            return mot
        filt.enable_saturation(lo, hi)
        filt.gain = self._gain_orig[ch] * self.settings.v_nominal / self.state_estimate.v_batt_lp
        u[ch] = filt.march(error)
        return self.mixer.add_input(u[ch], ch, mot)

    def march(self, running: bool) -> None:
        """Run one control cycle; running is False while the system is paused or stopping."""
        se = self.state_estimate
        sp = self.setpoint

        if not running and self.state.arm_state == ArmState.ARMED:
            self.disarm()
            logger.warning("system is not running while the controller was armed")

        tip = self.limits.tip_angle
        self.events.tipover_detected = abs(se.yaw) > tip or abs(se.pitch) > tip

        if not running or self.state.arm_state == ArmState.DISARMED:
            return

        mot = [0.0] * MAX_ROTORS
        u = [0.0] * MAX_INPUTS

        if not sp.en_alt_ctrl:
            self._last_en_alt_ctrl = False
        else:
            if not self._last_en_alt_ctrl:
                self.altitude.reset()
                self.altitude.prefill_outputs(0.0)
                self._last_en_alt_ctrl = True
            error = (self.settings.target_altitude_m - sp.alt) / self.limits.alt_max_error
            mot = self._run_channel(Channel.X, self.altitude, self.limits.x, error, mot, u)

        if sp.en_r_ctrl:
            mot = self._run_channel(
                Channel.ROLL, self.roll, self.limits.roll, sp.roll - se.roll, mot, u
            )

        if sp.en_py_ctrl:
            mot = self._run_channel(
                Channel.PITCH, self.pitch, self.limits.pitch, -(sp.pitch - se.pitch), mot, u
            )
            mot = self._run_channel(
                Channel.YAW, self.yaw, self.limits.yaw, -(sp.yaw - se.yaw), mot, u
            )

        for i in range(self.settings.num_rotors):
            signal = min(max(mot[i], 0.0), 1.0)
            self.state.m[i] = min(max(self.motor_map(signal), 0.0), 1.0)
            try:
                self.servos.march(i, self.state.m[i])
            except ServoError as exc:
                logger.error("servo command failed: %s", exc)

        self.state.u = u
        self.state.loop_index += 1
        self.state.last_step_ns = self.hardware.nanos()

    def cleanup(self) -> None:
        """Return the servos to nominal and cut rail power."""
        self.servos.disarm()