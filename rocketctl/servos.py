"""Servo actuators: pulse-width mapping, arming and the pre-flight servo test."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rocketctl.hardware import Hardware, elapsed_s
from rocketctl.mix import Mixer, MixError
from rocketctl.models import (
    MAX_ROTORS,
    ArmState,
    Channel,
    FeedbackState,
    Settings,
    UserInput,
)

logger = logging.getLogger(__name__)


class ServoError(RuntimeError):
    """Raised when a servo command cannot be carried out."""


@dataclass(frozen=True)
class ServoLimits:
    """Calibrated pulse widths of one servo, in microseconds."""

    min_us: float
    nominal_us: float
    max_us: float


DEFAULT_LIMITS: tuple[ServoLimits, ...] = (
    ServoLimits(1550.0, 1550.0, 1930.0),
    ServoLimits(1525.0, 1540.0, 1960.0),
    ServoLimits(1558.0, 1558.0, 1970.0),
    ServoLimits(1548.0, 1548.0, 1940.0),
    ServoLimits(1500.0, 1500.0, 1955.0),
    ServoLimits(1500.0, 1500.0, 2000.0),
    ServoLimits(1500.0, 1500.0, 2000.0),
    ServoLimits(1500.0, 1500.0, 2000.0),
)


def map_servo_signal(m: float, lim_min: float, lim_max: float) -> float:
    """Map a normalised signal in [0, 1] onto a pulse width between the limits."""
    if m > 1.0 or m < 0.0:
        raise ServoError(f"servo signal must be between 0.0 and 1.0, got {m}")
    if m == 0.0:
        return lim_min
    if m == 1.0:
        return lim_max
    return m * (lim_max - lim_min) + lim_min


class Servos:
    """The set of servos on the servo rail."""

    def __init__(self, hardware: Hardware, limits: Sequence[ServoLimits] | None = None):
        limits = tuple(DEFAULT_LIMITS if limits is None else limits)
        if len(limits) != MAX_ROTORS:
            raise ValueError(f"need limits for {MAX_ROTORS} servos, got {len(limits)}")
        self.hardware = hardware
        self.limits = limits
        self.arm_state = ArmState.DISARMED
        self.initialized = False
        self.m = [0.0] * MAX_ROTORS
        self.m_us = [lim.nominal_us for lim in limits]

    def init(self) -> None:
        """Initialise the servo outputs and move every servo to nominal."""
        self.arm_state = ArmState.DISARMED
        try:
            self.hardware.servo_init()
        except OSError as exc:
            raise ServoError(f"failed to initialise servos: {exc}") from exc
        self.m = [0.0] * MAX_ROTORS
        self.set_nominal()
        self.initialized = True

    def set_nominal(self) -> None:
        """Set every pulse width to its calibrated nominal value."""
        self.m_us = [lim.nominal_us for lim in self.limits]

    def set_min(self) -> None:
        """Set every pulse width to its calibrated minimum."""
        self.m_us = [lim.min_us for lim in self.limits]

    def set_max(self) -> None:
        """Set every pulse width to its calibrated maximum."""
        self.m_us = [lim.max_us for lim in self.limits]

    def set_single(self, i: int, pos: int) -> None:
        """Set servo i to its minimum (0), nominal (1) or maximum (2) position."""
        lim = self.limits[i]
        positions = {0: lim.min_us, 1: lim.nominal_us, 2: lim.max_us}
        try:
            self.m_us[i] = positions[pos]
        except KeyError:
            raise ServoError("pos must be 0 (min), 1 (nominal) or 2 (max)") from None

    def _send_all(self) -> None:
        for i, pulse in enumerate(self.m_us):
            try:
                self.hardware.servo_send_pulse_us(i, pulse)
            except OSError as exc:
                raise ServoError(f"failed to send pulse to servo {i}: {exc}") from exc

    def arm(self) -> None:
        """Move to nominal and power the servo rail."""
        if self.arm_state == ArmState.ARMED:
            logger.warning("trying to arm when servos are already armed")
            return
        if not self.initialized:
            raise ServoError("servos have not been initialized")
        self.set_nominal()
        self.hardware.servo_power_rail_en(True)
        self.arm_state = ArmState.ARMED

    def disarm(self) -> None:
        """Send nominal pulses, then cut power to the servo rail."""
        self.set_nominal()
        self._send_all()
        self.hardware.servo_power_rail_en(False)
        self.arm_state = ArmState.DISARMED

    def return_to_nominal(self) -> None:
        """Command every servo back to its nominal position."""
        if not self.initialized:
            raise ServoError("servos have not been initialized")
        self.set_nominal()
        if self.arm_state == ArmState.DISARMED:
            return
        self._send_all()

    def march(self, i: int, m: float) -> None:
        """Drive servo i with a normalised signal; does nothing while disarmed."""
        if self.arm_state == ArmState.DISARMED:
            return
        lim = self.limits[i]
        self.m_us[i] = map_servo_signal(m, lim.min_us, lim.max_us)
        try:
            self.hardware.servo_send_pulse_us(i + 1, self.m_us[i])
        except OSError as exc:
            raise ServoError(f"failed to send pulse to servo {i}: {exc}") from exc

    def cleanup(self) -> None:
        """Cut rail power and release the servo outputs."""
        self.hardware.servo_power_rail_en(False)
        self.hardware.servo_cleanup()


def _saturate(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class PreflightTest:
    """Timed sequence that exercises every servo before flight."""

    START_DELAY_S = 5.0

    def __init__(
        self,
        servos: Servos,
        mixer: Mixer,
        settings: Settings,
        feedback_state: FeedbackState,
        user_input: UserInput,
        hardware: Hardware,
        motor_map: Callable[[float], float],
    ):
        self.servos = servos
        self.mixer = mixer
        self.settings = settings
        self.feedback_state = feedback_state
        self.user_input = user_input
        self.hardware = hardware
        self.motor_map = motor_map

        self.initialized = False
        self.case = 0
        self.init_cases = 0
        self.result = 0
        self.init_time = 0
        self.time_ns = 0
        self.time_delay = 0.0
        self.time_cases = 0
        self.time_delay_cases = 0.0

    def _elapsed(self, start_ns: int) -> float:
        return elapsed_s(self.hardware, start_ns)

    def _mix(self, u: float, ch: Channel, mot: list[float]) -> list[float]:
        try:
            return self.mixer.add_input(u, ch, mot)
        except MixError as exc:
            logger.error("pre-flight mixing failed: %s", exc)
            return mot

    def _drive(self, mot: list[float]) -> None:
        for i in range(self.settings.num_rotors):
            signal = _saturate(self.motor_map(_saturate(mot[i])))
            self.feedback_state.m[i] = signal
            try:
                self.servos.march(i, signal)
            except ServoError as exc:
                logger.error("pre-flight servo command failed: %s", exc)

    def _send_raw_pulses(self) -> None:
        for i in range(self.settings.num_rotors):
            try:
                self.hardware.servo_send_pulse_us(i + 1, self.servos.m_us[i])
            except OSError:
                logger.error("failed to send pulse to servo rail pin %d", i + 1)

    def step(self) -> bool:
        """Advance the test by one control cycle; True once it has just completed."""
        if self.initialized and self.result:
            return False
        if self.case == 0 and self._elapsed(self.init_time) < self.START_DELAY_S:
            return False

        mot = [0.0] * MAX_ROTORS
        now = self.hardware.nanos

        if self.case == 0:
            logger.info("Initializing pre-flight checks")
            self.case = 1
            self.user_input.requested_arm_mode = ArmState.ARMED
            self.init_time = now()
            self.result = 0
            self.init_cases = 1
            self.initialized = True

        if self.case == 1:
            if self.init_cases == 1:
                self.init_cases = 2
                self.time_delay = 5.0
                self.time_ns = now()
                logger.info("Case-1: min/max pulses check")
                self.servos.set_max()
            elif self._elapsed(self.time_ns) < self.time_delay:
                self.servos.set_max()
            else:
                self.servos.set_min()
                self.time_cases = now()
                self.time_delay_cases = 1.0
                self.case = 2
                logger.info("Case-1: Done")
            self._send_raw_pulses()
            return False

        if self.case == 2:
            n = self.settings.num_rotors
            if self.init_cases == 2 and self._elapsed(self.time_cases) >= self.time_delay_cases:
                self.init_cases = 3
                self.time_delay = 5.0
                self.time_ns = now()
                logger.info("Case-2: min/max signal mapping")
                mot[:n] = [1.0] * n
            elif self.init_cases == 3 and self._elapsed(self.time_ns) < self.time_delay:
                mot[:n] = [1.0] * n
            elif self.init_cases == 3:
                self.time_cases = now()
                self.time_delay_cases = 1.0
                self.case = 3
                logger.info("Case-2: Done")
            self._drive(mot)
            return False

        if self.case in (3, 4):
            channel, start, next_delay = (
                (Channel.PITCH, 3, 0.5) if self.case == 3 else (Channel.YAW, 4, 1.0)
            )
            label = "pitch" if self.case == 3 else "yaw"
            if self.init_cases == start and self._elapsed(self.time_cases) >= self.time_delay_cases:
                self.init_cases = start + 1
                self.time_delay = 3.0
                self.time_ns = now()
                logger.info("Case-%d: min/max %s channel mixing", self.case, label)
                mot = self._mix(1.0, channel, mot)
            elif self.init_cases == start + 1:
                dt = self._elapsed(self.time_ns)
                if dt < self.time_delay:
                    mot = self._mix(1.0, channel, mot)
                elif dt < self.time_delay * 2.0:
                    mot = self._mix(-1.0, channel, mot)
                else:
                    mot = self._mix(0.0, channel, mot)
                    logger.info("Case-%d: Done", self.case)
                    self.case += 1
                    self.time_cases = now()
                    self.time_delay_cases = next_delay
            self._drive(mot)
            return False

        if self.case == 5:
            if self.init_cases == 5 and self._elapsed(self.time_cases) >= self.time_delay_cases:
                self.init_cases = 6
                self.time_delay = 3.0
                self.time_ns = now()
                logger.info("Case-5: min/max brake channel mixing")
                mot = self._mix(-1.0, Channel.X, mot)
            elif self.init_cases == 6 and self._elapsed(self.time_ns) < self.time_delay:
                mot = self._mix(-1.0, Channel.X, mot)
            elif self.init_cases == 6:
                mot = self._mix(0.0, Channel.X, mot)
                self.case = 6
                self.time_cases = now()
                self.time_delay_cases = 0.5
                logger.info("Case-5: Done")
            self._drive(mot)
            return False

        if self.case == 6:
            if self.init_cases == 6 and self._elapsed(self.time_cases) >= self.time_delay_cases:
                self.init_cases = 7
                self.time_delay = 3.0
                self.time_ns = now()
                logger.info("Case-6: incremental increase from min to max on brake channel")
                mot = self._mix(0.0, Channel.X, mot)
            elif self.init_cases == 7:
                dt = self._elapsed(self.time_ns)
                if dt <= self.time_delay:
                    mot = self._mix(-dt / self.time_delay, Channel.X, mot)
                    self.time_cases = now()
                    self.time_delay_cases = 1.0
                elif dt <= self.time_delay + 1.0:
                    self.servos.set_nominal()
                else:
                    logger.info("Servo Test Completed")
                    self.user_input.requested_arm_mode = ArmState.DISARMED
                    self.case = 7
                    self.result = 1
                    return True
            self._drive(mot)
            return False

        raise ServoError(f"unknown pre-flight case {self.case}")