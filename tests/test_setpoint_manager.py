import pytest

from rocketctl.feedback import ControlLimits, DiscreteFilter, Feedback
from rocketctl.hardware import RecordingHardware
from rocketctl.mix import Mixer, RotorLayout
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
from rocketctl.servos import PreflightTest, Servos
from rocketctl.setpoint_manager import SetpointError, SetpointManager

ALT_MAX_ERROR = 100.0


@pytest.fixture
def rig():
    hw = RecordingHardware()
    settings = Settings()
    se = StateEstimate()
    mixer = Mixer(RotorLayout.FOUR_X)
    servos = Servos(hw)
    servos.init()
    filt = DiscreteFilter([1.0], [1.0], 0.01, 1.0)
    controllers = {name: filt for name in ("roll", "pitch", "yaw", "altitude")}
    limits = ControlLimits(
        roll=0.5, pitch=0.5, yaw=0.5, x=1.0,
        soft_start_seconds=0.0, tip_angle=1.0, alt_max_error=ALT_MAX_ERROR,
    )
    feedback = Feedback(settings, controllers, limits, se, Setpoint(), Events(), mixer, servos, hw)
    ui = UserInput(initialized=True)
    preflight = PreflightTest(servos, mixer, settings, feedback.state, ui, hw, lambda m: m)
    mgr = SetpointManager(settings, se, ui, feedback, servos, hw, ALT_MAX_ERROR, preflight)
    mgr.init()
    return mgr


def _arm(mgr):
    mgr.feedback.arm()
    mgr.servos.arm()


def test_init_twice_raises(rig):
    with pytest.raises(SetpointError):
        rig.init()


def test_cleanup_allows_reinit(rig):
    rig.cleanup()
    assert rig.setpoint.initialized is False
    rig.init()
    assert rig.setpoint.initialized is True
    assert rig.flight_status == FlightStatus.WAIT


def test_update_requires_init(rig):
    rig.cleanup()
    with pytest.raises(SetpointError):
        rig.update(True)


def test_update_requires_user_input(rig):
    rig.user_input.initialized = False
    with pytest.raises(SetpointError):
        rig.update(True)


def test_disarmed_forces_wait_and_idle(rig):
    rig.flight_status = FlightStatus.POWERED_ASCENT
    rig.user_input.flight_mode = FlightMode.AP_CTRL
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.WAIT
    assert rig.user_input.flight_mode == FlightMode.IDLE


def test_arm_request_arms_feedback_and_servos(rig):
    rig.user_input.requested_arm_mode = ArmState.ARMED
    rig.update(True)
    assert rig.feedback.state.arm_state == ArmState.ARMED
    assert rig.servos.arm_state == ArmState.ARMED
    assert rig.setpoint.en_alt_ctrl is False
    assert rig.setpoint.en_py_ctrl is False


def test_disarm_request_disarms(rig):
    _arm(rig)
    rig.user_input.requested_arm_mode = ArmState.DISARMED
    rig.update(True)
    assert rig.feedback.state.arm_state == ArmState.DISARMED
    assert rig.servos.arm_state == ArmState.DISARMED


def test_not_running_leaves_setpoint_alone(rig):
    _arm(rig)
    rig.user_input.requested_arm_mode = ArmState.ARMED
    rig.user_input.flight_mode = FlightMode.YP_TEST
    rig.update(False)
    assert rig.setpoint.en_py_ctrl is False


def test_modes_configure_controllers(rig):
    _arm(rig)
    rig.user_input.requested_arm_mode = ArmState.ARMED
    rig.flight_status = FlightStatus.TEST
    rig.update(True)
    assert rig.user_input.flight_mode == FlightMode.YP_TEST
    assert rig.setpoint.en_py_ctrl is True
    assert rig.setpoint.en_alt_ctrl is False

    rig.flight_status = FlightStatus.STANDBY
    rig.user_input.flight_mode = FlightMode.YP_STABILIZE_AP
    rig.state_estimate.proj_ap = rig.settings.target_altitude_m
    rig.update(True)
    assert rig.setpoint.en_py_ctrl is True
    assert rig.setpoint.en_alt_ctrl is True
    assert rig.setpoint.alt == rig.settings.target_altitude_m


def test_apogee_setpoint_clamped(rig):
    target = rig.settings.target_altitude_m
    rig.state_estimate.proj_ap = target * 5
    rig.update_apogee_setpoint()
    assert rig.setpoint.alt == target + ALT_MAX_ERROR
    rig.state_estimate.proj_ap = -target
    rig.update_apogee_setpoint()
    assert rig.setpoint.alt == target - ALT_MAX_ERROR
    rig.state_estimate.proj_ap = target + ALT_MAX_ERROR / 2
    rig.update_apogee_setpoint()
    assert rig.setpoint.alt == target + ALT_MAX_ERROR / 2


def test_wait_to_standby_records_ground(rig):
    _arm(rig)
    rig.state_estimate.alt_bmp = 12.0
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.STANDBY
    assert rig.events.ground_alt == 12.0
    assert rig.events.apogee_alt == 12.0


def test_ignition_confirmed(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.STANDBY
    se = rig.state_estimate
    se.alt_bmp_accel = 30.0
    se.alt_bmp = 10.0
    rig.update_flight_status()
    assert rig.events.ignition_fl is True
    assert rig.flight_status == FlightStatus.STANDBY
    rig.hardware.advance(0.3)
    se.alt_bmp = 20.0
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.POWERED_ASCENT
    assert rig.events.meco_fl is False


def test_ignition_false_alarm(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.STANDBY
    se = rig.state_estimate
    se.alt_bmp_accel = 30.0
    se.alt_bmp = 10.0
    rig.update_flight_status()
    rig.hardware.advance(0.3)
    se.alt_bmp_accel = 0.0
    rig.update_flight_status()
    assert rig.events.ignition_fl is False
    assert rig.flight_status == FlightStatus.STANDBY


def test_burnout_to_unpowered_ascent(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.POWERED_ASCENT
    rig.events.ignition_fl = True
    se = rig.state_estimate
    se.alt_bmp = 80.0
    se.alt_bmp_vel = 50.0
    se.alt_bmp_accel = -5.0
    rig.update_flight_status()
    assert rig.events.meco_fl is True
    rig.hardware.advance(0.3)
    se.alt_bmp = 100.0
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.UNPOWERED_ASCENT
    rig.update_flight_status()
    assert rig.user_input.flight_mode == FlightMode.AP_CTRL


def test_apogee_to_descent(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.UNPOWERED_ASCENT
    rig.events.apogee_alt = 200.0
    se = rig.state_estimate
    se.alt_bmp = 190.0
    se.alt_bmp_vel = -1.0
    se.alt_bmp_accel = -9.8
    rig.update_flight_status()
    assert rig.events.apogee_fl is True
    assert rig.flight_status == FlightStatus.UNPOWERED_ASCENT
    rig.hardware.advance(0.6)
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.DESCENT_TO_LAND
    assert rig.events.land_alt == 190.0


def test_descent_high_keeps_servos_armed(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.DESCENT_TO_LAND
    rig.state_estimate.alt_bmp = 500.0
    rig.events.land_alt = 500.0
    rig.update_flight_status()
    assert rig.servos.arm_state == ArmState.ARMED
    assert rig.user_input.flight_mode == FlightMode.IDLE
    assert rig.flight_status == FlightStatus.DESCENT_TO_LAND


def test_early_landing_detection(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.DESCENT_TO_LAND
    rig.state_estimate.alt_bmp = 10.0
    rig.events.land_alt = 10.0
    rig.update_flight_status()
    assert rig.events.land_fl_vel is True
    assert rig.servos.arm_state == ArmState.DISARMED
    rig.hardware.advance(rig.settings.event_landing_delay_early_s)
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.LANDED


def test_late_landing_detection(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.DESCENT_TO_LAND
    se = rig.state_estimate
    se.alt_bmp = 10.0
    se.alt_bmp_vel = 5.0
    rig.events.land_alt = 10.0
    rig.update_flight_status()
    assert rig.events.land_fl is True
    assert rig.events.land_fl_vel is False
    rig.hardware.advance(rig.settings.event_landing_delay_late_s)
    rig.update_flight_status()
    assert rig.flight_status == FlightStatus.LANDED


def test_landed_requests_disarm(rig):
    _arm(rig)
    rig.flight_status = FlightStatus.LANDED
    rig.user_input.requested_arm_mode = ArmState.ARMED
    rig.update_flight_status()
    assert rig.user_input.requested_arm_mode == ArmState.DISARMED
    assert rig.user_input.flight_mode == FlightMode.IDLE


def test_tipover_idles_and_returns_to_nominal(rig):
    _arm(rig)
    rig.servos.set_max()
    rig.user_input.flight_mode = FlightMode.AP_CTRL
    rig.flight_status = FlightStatus.STANDBY
    rig.events.tipover_detected = True
    rig.update_flight_status()
    assert rig.user_input.flight_mode == FlightMode.IDLE
    assert rig.servos.m_us == [lim.nominal_us for lim in rig.servos.limits]


def test_preflight_started_by_update(rig):
    rig.user_input.run_preflight_checks = True
    rig.update(True)
    assert rig.preflight.initialized is False
    rig.hardware.advance(PreflightTest.START_DELAY_S)
    rig.update(True)
    assert rig.preflight.initialized is True
    assert rig.preflight.case == 1
    assert rig.feedback.state.arm_state == ArmState.ARMED