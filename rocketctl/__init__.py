"""Rocket flight control core: mixing, servos, feedback, flight-status tracking, CSV logging and status display."""

__version__ = "0.1.0"

__all__ = [
    "models",
    "hardware",
    "mix",
    "servos",
    "feedback",
    "input_manager",
    "setpoint_manager",
    "log_manager",
    "printf_manager",
]