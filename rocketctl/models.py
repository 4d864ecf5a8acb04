"""Shared state records and enumerations for the flight controller."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

MAX_INPUTS = 6
MAX_ROTORS = 8


class ArmState(enum.IntEnum):
    """Whether the controller or the servo rail is armed."""

    DISARMED = 0
    ARMED = 1


class FlightMode(enum.IntEnum):
    """Which set of controllers is active."""

    IDLE = 0
    AP_CTRL = 1
    YP_TEST = 2
    YP_STABILIZE_AP = 3


class FlightStatus(enum.IntEnum):
    """Phase of flight; the normal phases are ordered in flight sequence."""

    WAIT = 0
    STANDBY = 1
    POWERED_ASCENT = 2
    UNPOWERED_ASCENT = 3
    DESCENT_TO_LAND = 4
    LANDED = 5
    TEST = 6


class Channel(enum.IntEnum):
    """Control input channels, in mixing-matrix column order."""

    X = 0
    Y = 1
    Z = 2
    ROLL = 3
    PITCH = 4
    YAW = 5


@dataclass
class Settings:
    """Run-time configuration of the controller."""

    name: str = "default"
    num_rotors: int = 4
    v_nominal: float = 7.4
    target_altitude_m: float = 1000.0

    enable_logging: bool = False
    log_encoders: bool = False
    log_sensors: bool = False
    log_state: bool = False
    log_setpoint: bool = False
    log_control_u: bool = False
    log_motor_signals: bool = False
    log_motor_signals_us: bool = False

    printf_arm: bool = False
    printf_battery: bool = False
    printf_altitude: bool = False
    printf_proj_ap: bool = False
    printf_rpy: bool = False
    printf_setpoint: bool = False
    printf_u: bool = False
    printf_motors: bool = False
    printf_xbee: bool = False
    printf_rev: bool = False
    printf_mode: bool = False
    printf_status: bool = False
    printf_counter: bool = False

    event_launch_accel: float = 20.0
    event_launch_dh: float = 5.0
    event_ignition_delay_s: float = 0.2
    event_ignition_dh: float = 5.0
    event_cutoff_delay_s: float = 0.2
    event_cutoff_dh: float = 50.0
    event_apogee_delay_s: float = 0.5
    event_apogee_accel_tol: float = 15.0
    event_apogee_dh: float = 10.0
    event_start_landing_alt_m: float = 50.0
    event_landing_accel_tol: float = 2.0
    event_landing_alt_tol: float = 2.0
    event_landing_vel_tol: float = 1.0
    event_landing_delay_early_s: float = 5.0
    event_landing_delay_late_s: float = 20.0

    def __post_init__(self) -> None:
        if not 1 <= self.num_rotors <= MAX_ROTORS:
            raise ValueError(
                f"num_rotors must be between 1 and {MAX_ROTORS}, got {self.num_rotors}"
            )


def _zeros(n: int):
    return lambda: [0.0] * n


@dataclass
class StateEstimate:
    """Latest estimate of the vehicle state."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    v_batt_lp: float = 7.4
    v_batt_lp_jack: float = 0.0
    bmp_pressure_raw: float = 0.0
    alt_bmp_raw: float = 0.0
    alt_bmp: float = 0.0
    alt_bmp_vel: float = 0.0
    alt_bmp_accel: float = 0.0
    proj_ap: float = 0.0
    counter: int = 0
    rev: list[int] = field(default_factory=lambda: [0] * 4)
    gyro: list[float] = field(default_factory=_zeros(3))
    accel: list[float] = field(default_factory=_zeros(3))
    tb_imu: list[float] = field(default_factory=_zeros(3))
    pos_global: list[float] = field(default_factory=_zeros(3))
    vel_global: list[float] = field(default_factory=_zeros(3))
    xp: float = 0.0
    yp: float = 0.0
    zp: float = 0.0


@dataclass
class Setpoint:
    """Commanded attitude and altitude, and which controllers run."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    alt: float = 0.0
    X: float = 0.0
    Y: float = 0.0
    Z: float = 0.0
    X_dot: float = 0.0
    Y_dot: float = 0.0
    Z_dot: float = 0.0
    en_alt_ctrl: bool = False
    en_r_ctrl: bool = False
    en_py_ctrl: bool = False
    init_time: int = 0
    initialized: bool = False

    def clear_attitude(self) -> None:
        """Command level attitude: zero roll, pitch and yaw."""
        self.roll = 0.0
        self.pitch = 0.0
        self.yaw = 0.0


@dataclass
class Events:
    """Flags and recorded values used to detect flight events."""

    tipover_detected: bool = False
    burnout_fl: bool = False
    ignition_fl: bool = False
    meco_fl: bool = False
    apogee_fl: bool = False
    land_fl: bool = False
    land_fl_vel: bool = False
    ground_alt: float = 0.0
    apogee_alt: float = 0.0
    ignition_alt: float = 0.0
    burnout_alt: float = 0.0
    land_alt: float = 0.0
    init_time: int = 0
    init_time_landed: int = 0


@dataclass
class UserInput:
    """What the operator, or an external system, has requested."""

    initialized: bool = False
    requested_arm_mode: ArmState = ArmState.DISARMED
    flight_mode: FlightMode = FlightMode.IDLE
    input_active: bool = False
    use_external_state_estimation: bool = False
    use_external_flight_state: bool = False
    run_preflight_checks: bool = False


@dataclass
class FeedbackState:
    """Outputs of the feedback loop, readable by other components."""

    arm_state: ArmState = ArmState.DISARMED
    initialized: bool = False
    arm_time_ns: int = 0
    loop_index: int = 0
    last_step_ns: int = 0
    u: list[float] = field(default_factory=_zeros(MAX_INPUTS))
    m: list[float] = field(default_factory=_zeros(MAX_ROTORS))