"""Access to LEDs, the servo rail and the clock, plus a recording stand-in."""

from __future__ import annotations

import abc
import time
from dataclasses import dataclass, field


class Hardware(abc.ABC):
    """Interface to the board peripherals the controller drives."""

    @abc.abstractmethod
    def led_set(self, led: str, value: bool) -> None:
        """Switch an LED on or off."""

    @abc.abstractmethod
    def servo_init(self) -> None:
        """Prepare the servo outputs; raise OSError on failure."""

    @abc.abstractmethod
    def servo_send_pulse_us(self, channel: int, pulse_us: float) -> None:
        """Send one pulse to a servo channel; raise OSError on failure."""

    @abc.abstractmethod
    def servo_power_rail_en(self, enabled: bool) -> None:
        """Enable or disable power to the servo rail."""

    @abc.abstractmethod
    def servo_cleanup(self) -> None:
        """Release the servo outputs."""

    def nanos(self) -> int:
        """Monotonic time in nanoseconds."""
        return time.monotonic_ns()


def elapsed_s(hardware: Hardware, start_ns: int) -> float:
    """Seconds elapsed on the hardware clock since start_ns."""
    return (hardware.nanos() - start_ns) / 1e9


@dataclass
class RecordingHardware(Hardware):
    """Hardware that records every command and keeps a manual clock."""

    time_ns: int = 0
    fail_pulses: bool = False
    fail_init: bool = False
    leds: dict = field(default_factory=dict)
    pulses: list = field(default_factory=list)
    rail_history: list = field(default_factory=list)
    servo_initialized: bool = False

    @property
    def rail_enabled(self) -> bool:
        return bool(self.rail_history) and self.rail_history[-1]

    def led_set(self, led, value):
        self.leds[led] = bool(value)

    def servo_init(self):
        if self.fail_init:
            raise OSError("servo initialisation failed")
        self.servo_initialized = True

    def servo_send_pulse_us(self, channel, pulse_us):
        if self.fail_pulses:
            raise OSError(f"failed to send pulse to servo channel {channel}")
        self.pulses.append((channel, pulse_us))

    def servo_power_rail_en(self, enabled):
        self.rail_history.append(bool(enabled))

    def servo_cleanup(self):
        self.servo_initialized = False

    def nanos(self):
        return self.time_ns

    def advance(self, seconds):
        """Move the clock forward."""
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        self.time_ns += int(round(seconds * 1e9))