"""Selection of commands arriving from the operator link."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from rocketctl.models import ArmState, FlightMode, FlightStatus, UserInput
from rocketctl.servos import PreflightTest

logger = logging.getLogger(__name__)


class InputManagerError(RuntimeError):
    """Raised when the input manager cannot act on its input."""


@dataclass
class FallbackPacket:
    """Commands received over the fallback serial link."""

    use_external_state_estimation: bool = False
    run_preflight_checks: bool = False
    armed_state: ArmState = ArmState.DISARMED
    flight_state: FlightStatus = FlightStatus.WAIT


class InputManager:
    """Turns received packets into user input for the rest of the controller."""

    def __init__(self, user_input: UserInput):
        self.user_input = user_input
        user_input.requested_arm_mode = ArmState.DISARMED
        user_input.flight_mode = FlightMode.IDLE
        user_input.input_active = False
        user_input.use_external_state_estimation = False
        user_input.run_preflight_checks = False
        self.serial_msg = FallbackPacket()
        self.fallback = FallbackPacket()
        user_input.initialized = True

    def receive(self, packet: FallbackPacket) -> None:
        """Store the latest packet from the link and mark input as active."""
        self.serial_msg = replace(packet)
        self.user_input.input_active = True

    def pick_data_source(self, flight_status: FlightStatus) -> FlightStatus:
        """Apply the latest packet to the user input and return the flight status to use."""
        ui = self.user_input
        if not ui.initialized:
            raise InputManagerError("input manager was never initialized")
        self.fallback = replace(self.serial_msg)
        fb = self.fallback

        ui.use_external_state_estimation = fb.use_external_state_estimation
        if not ui.run_preflight_checks and fb.run_preflight_checks:
            ui.run_preflight_checks = True
        ui.requested_arm_mode = ArmState(fb.armed_state)

        status = FlightStatus(flight_status)
        # advance one phase at a time and never move back
        if ui.use_external_flight_state and fb.flight_state > status:
            status = FlightStatus(status + 1)
        return status

    def start_pre_flight_checks(self, preflight: PreflightTest) -> bool:
        """Advance the servo pre-flight test if requested; True when it has just passed."""
        if not self.user_input.run_preflight_checks:
            return False
        if preflight.result == 0 or not preflight.initialized:
            if preflight.result == 0:
                preflight.step()
            if preflight.result == 1:
                logger.info("Pre-flight check complete")
                return True
            if preflight.result == -1:
                raise InputManagerError("pre-flight check failed")
        return False

    def poll(self, running: bool) -> bool:
        """Run one pass of the arming watch; True if an arm request was raised."""
        ui = self.user_input
        if not ui.input_active or not running:
            return False
        if ui.requested_arm_mode != ArmState.ARMED and self.fallback.armed_state == ArmState.ARMED:
            ui.requested_arm_mode = ArmState.ARMED
            return True
        return False