# rocketctl

The control core of an actively stabilised rocket. Given a state estimate,
it runs the altitude, roll, pitch and yaw controllers, mixes their outputs
onto the actuators and turns the result into servo pulse widths. It tracks
the flight phase from the launch pad to landing, can write every control
step to a numbered CSV log, and can draw a live status line in a terminal.

The package has no dependencies outside the standard library.

## Hardware

The board is reached only through the abstract `Hardware` class in
`rocketctl.hardware`: `led_set`, `servo_init`, `servo_send_pulse_us`,
`servo_power_rail_en`, `servo_cleanup` and a nanosecond clock `nanos()`
(by default `time.monotonic_ns`). `elapsed_s(hardware, start_ns)` gives the
seconds elapsed on that clock.

`RecordingHardware` implements the interface in memory. It keeps the LED
states in `leds`, every pulse as `(channel, pulse_us)` in `pulses` and every
rail switch in `rail_history` (with `rail_enabled` for the latest). Its clock
starts at `time_ns` and moves only when you call `advance(seconds)`. Set
`fail_init` or `fail_pulses` to make servo initialisation or pulses raise
`OSError`. With it the whole control loop runs on an ordinary computer.

## Modules

- `rocketctl.models`: the shared state records `Settings`, `StateEstimate`,
  `Setpoint`, `Events`, `UserInput` and `FeedbackState`, and the enums
  `ArmState`, `FlightMode`, `FlightStatus` and `Channel`. `Settings` rejects a
  `num_rotors` outside 1 to 8.
- `rocketctl.mix`: `Mixer(layout)` maps the six control inputs (X, Y, Z,
  roll, pitch, yaw) onto four actuators for a `RotorLayout` (`"4x"` or
  `"4plus"`).
  - `all_controls(u)` mixes all six inputs and clamps to `[0, 1]`.
  - `check_saturation(ch, mot)` returns the `(min, max)` input the channel can
    take before an actuator leaves `[0, 1]`.
  - `add_input(u, ch, mot)` returns new, clamped actuator signals.
  - An unknown layout, a channel the layout does not control, or signals
    already out of range raise `MixError`.
- `rocketctl.servos`: `Servos(hardware, limits)` arms, disarms and drives the
  eight servo outputs using calibrated `ServoLimits` (min, nominal, max pulse
  widths in microseconds). `map_servo_signal` turns a signal in `[0, 1]` into
  a pulse width. `march` does nothing while disarmed. Failures raise
  `ServoError`.
  - `PreflightTest.step()` advances a timed ground check one cycle at a time:
    min/max pulses, signal mapping, pitch and yaw mixing, the brake channel,
    and a slow ramp on the brake channel. It returns `True` on the cycle it
    completes.
- `rocketctl.feedback`: `DiscreteFilter` is a discrete transfer function with
  output saturation and soft start. `Feedback` copies the `"roll"`, `"pitch"`,
  `"yaw"` and `"altitude"` controllers it is given and, on each `march(running)`:
  - flags a tip-over when pitch or yaw exceeds `ControlLimits.tip_angle`;
  - scales each controller's gain by `v_nominal / v_batt_lp`;
  - bounds each controller by the mixer's saturation range and the channel
    limit;
  - mixes the outputs and sends them to the servos.

  `arm()`, `disarm()` and `cleanup()` manage the arm state, LEDs and servos.
- `rocketctl.input_manager`: `InputManager` takes `FallbackPacket`s with
  `receive`. It then works in three steps:
  - `pick_data_source` copies the arm request and pre-flight request into
    `UserInput`. When external flight state is in use, it moves the flight
    status forward by at most one phase.
  - `poll` raises an arm request when the link asks for one.
  - `start_pre_flight_checks` drives a `PreflightTest`.
- `rocketctl.setpoint_manager`: `SetpointManager` runs the flight-status state
  machine (WAIT, STANDBY, POWERED_ASCENT, UNPOWERED_ASCENT, DESCENT_TO_LAND,
  LANDED, and TEST). It picks the flight mode and sets which controllers run
  and what they aim for.
  - The altitude setpoint follows the projected apogee, held within
    `alt_max_error` of the target.
  - A tip-over idles the controllers and returns the servos to nominal.
- `rocketctl.log_manager`: `LogManager` writes `1.csv`, `2.csv`, … in a log
  directory, up to `max_files`.
  - Entries (`LogEntry`) are double-buffered. A background thread writes them
    out.
  - `add` returns `False` when both buffers are full.
  - `stop` writes whatever is left.
  - It is a context manager.
  - `header_line` and `format_entry` build the CSV text. The columns follow
    the `log_*` switches in `Settings`.
- `rocketctl.printf_manager`: `StatusPrinter` writes a coloured header and a
  one-line status display to a stream. `run` refreshes the line at a fixed
  rate until told to stop. `flight_mode_text` and `flight_status_text` give
  the coloured labels. `ColourCycle` rotates the column colours.

## Example

```python
import io

from rocketctl.hardware import RecordingHardware
from rocketctl.log_manager import header_line
from rocketctl.mix import Mixer
from rocketctl.models import Channel, FlightStatus, Settings
from rocketctl.printf_manager import StatusPrinter, flight_status_text
from rocketctl.servos import Servos

hw = RecordingHardware()
servos = Servos(hw)
servos.init()
servos.arm()
servos.march(0, 0.5)
print(hw.pulses)           # [(1, 1740.0)]

mixer = Mixer("4x")
print(mixer.check_saturation(Channel.PITCH, [0.5] * 4))   # (-1.0, 1.0)

settings = Settings()
print(header_line(settings))
StatusPrinter(settings, io.StringIO()).header()
print(flight_status_text(FlightStatus.WAIT))
```

## What it does not do

This is a library, not a flight program. It has no command to run and no
main loop. It does not estimate state, read an IMU, barometer or encoders,
load settings from a file, or talk to a radio or serial link: you fill in
`StateEstimate` and pass `FallbackPacket`s in yourself. The only `Hardware`
implementation it provides is `RecordingHardware`. To drive a real board,
subclass `Hardware`.

## Tests

The test suite uses pytest and needs no hardware. Install the package with
its `test` extra and run `pytest`.