"""CSV flight log with a background writer thread and double buffering."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from rocketctl.models import Settings

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_LEN = 50
DEFAULT_MAX_FILES = 500
DEFAULT_WRITE_HZ = 5.0

_BASE_HEADER = "loop_index, counter, last_step_ns"
_ENCODER_HEADER = ", rev1, rev2, rev3, rev4"
_ENCODERS = ("rev1", "rev2", "rev3", "rev4")
_SENSORS = (
    "v_batt", "v_batt_jack", "bmp_pressure_raw", "alt_bmp_raw", "alt_bmp",
    "alt_bmp_vel", "alt_bmp_accel", "gyro_roll", "gyro_pitch", "gyro_yaw",
    "accel_X", "accel_Y", "accel_Z",
)
_STATE = (
    "roll", "pitch", "yaw", "X", "Y", "Z", "Xdot", "Ydot", "Zdot",
    "xp", "yp", "zp", "xb", "yb", "zb", "proj_ap",
)
_SETPOINT = (
    "sp_roll", "sp_pitch", "sp_yaw", "sp_X", "sp_Y", "sp_Z",
    "sp_Xdot", "sp_Ydot", "sp_Zdot", "sp_alt",
)
_CONTROL = ("u_roll", "u_pitch", "u_yaw", "u_X", "u_Y", "u_Z")
_MOTOR_COUNTS = (4, 6, 8)


class LogError(RuntimeError):
    """Raised when the log cannot be started or written to."""


@dataclass
class LogEntry:
    """One row of the flight log."""

    loop_index: int = 0
    counter: int = 0
    last_step_ns: int = 0
    rev1: int = 0
    rev2: int = 0
    rev3: int = 0
    rev4: int = 0
    v_batt: float = 0.0
    v_batt_jack: float = 0.0
    bmp_pressure_raw: float = 0.0
    alt_bmp_raw: float = 0.0
    alt_bmp: float = 0.0
    alt_bmp_vel: float = 0.0
    alt_bmp_accel: float = 0.0
    gyro_roll: float = 0.0
    gyro_pitch: float = 0.0
    gyro_yaw: float = 0.0
    accel_X: float = 0.0
    accel_Y: float = 0.0
    accel_Z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    X: float = 0.0
    Y: float = 0.0
    Z: float = 0.0
    Xdot: float = 0.0
    Ydot: float = 0.0
    Zdot: float = 0.0
    xp: float = 0.0
    yp: float = 0.0
    zp: float = 0.0
    xb: float = 0.0
    yb: float = 0.0
    zb: float = 0.0
    proj_ap: float = 0.0
    sp_roll: float = 0.0
    sp_pitch: float = 0.0
    sp_yaw: float = 0.0
    sp_X: float = 0.0
    sp_Y: float = 0.0
    sp_Z: float = 0.0
    sp_Xdot: float = 0.0
    sp_Ydot: float = 0.0
    sp_Zdot: float = 0.0
    sp_alt: float = 0.0
    u_roll: float = 0.0
    u_pitch: float = 0.0
    u_yaw: float = 0.0
    u_X: float = 0.0
    u_Y: float = 0.0
    u_Z: float = 0.0
    mot_1: float = 0.0
    mot_2: float = 0.0
    mot_3: float = 0.0
    mot_4: float = 0.0
    mot_5: float = 0.0
    mot_6: float = 0.0
    mot_7: float = 0.0
    mot_8: float = 0.0
    mot_1_us: float = 0.0
    mot_2_us: float = 0.0
    mot_3_us: float = 0.0
    mot_4_us: float = 0.0
    mot_5_us: float = 0.0
    mot_6_us: float = 0.0
    mot_7_us: float = 0.0
    mot_8_us: float = 0.0


def _float_groups(settings: Settings) -> Iterator[tuple[str, ...]]:
    """Names of the floating-point column groups enabled in the settings."""
    if settings.log_sensors:
        yield _SENSORS
    if settings.log_state:
        yield _STATE
    if settings.log_setpoint:
        yield _SETPOINT
    if settings.log_control_u:
        yield _CONTROL
    n = settings.num_rotors
    if settings.log_motor_signals and n in _MOTOR_COUNTS:
        yield tuple(f"mot_{i}" for i in range(1, n + 1))
    if settings.log_motor_signals_us and n in _MOTOR_COUNTS:
        yield tuple(f"mot_{i}_us" for i in range(1, n + 1))


def header_line(settings: Settings) -> str:
    """The CSV header for the columns enabled in the settings."""
    parts = [_BASE_HEADER]
    if settings.log_encoders:
        parts.append(_ENCODER_HEADER)
    for names in _float_groups(settings):
        parts.extend(f",{name}" for name in names)
    return "".join(parts) + "\n"


def format_entry(settings: Settings, entry: LogEntry) -> str:
    """One CSV row for the entry, matching header_line."""
    parts = [f"{entry.loop_index},{entry.counter},{entry.last_step_ns}"]
    if settings.log_encoders:
        parts.extend(f",{getattr(entry, name)}" for name in _ENCODERS)
    for names in _float_groups(settings):
        parts.extend(f",{getattr(entry, name):.4F}" for name in names)
    return "".join(parts) + "\n"


class LogManager:
    """Writes log entries to a numbered CSV file from a background thread."""

    def __init__(
        self,
        settings: Settings,
        log_dir: str | os.PathLike,
        buffer_len: int = DEFAULT_BUFFER_LEN,
        max_files: int = DEFAULT_MAX_FILES,
        write_hz: float = DEFAULT_WRITE_HZ,
    ):
        if buffer_len < 1:
            raise ValueError(f"buffer_len must be positive, got {buffer_len}")
        if max_files < 1:
            raise ValueError(f"max_files must be positive, got {max_files}")
        if write_hz <= 0:
            raise ValueError(f"write_hz must be positive, got {write_hz}")
        self.settings = settings
        self.log_dir = Path(log_dir)
        self.buffer_len = buffer_len
        self.max_files = max_files
        self.write_hz = float(write_hz)
        self.path: Path | None = None
        self.entries_logged = 0
        self._cond = threading.Condition()
        self._running = False
        self._current: list[LogEntry] = []
        self._pending: list[LogEntry] | None = None
        self._file = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._running

    def _next_path(self) -> Path:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        for i in range(1, self.max_files + 1):
            path = self.log_dir / f"{i}.csv"
            if not path.exists():
                return path
        raise LogError("log file limit exceeded; delete old log files before continuing")

    def start(self) -> Path:
        """Open the next log file, write its header and start the writer thread."""
        if self._running:
            self.stop()
        path = self._next_path()
        try:
            handle = open(path, "w", encoding="ascii", newline="")
        except OSError as exc:
            raise LogError(f"can't open log file for writing: {exc}") from exc
        handle.write(header_line(self.settings))
        handle.flush()
        self.path = path
        self._file = handle
        self.entries_logged = 0
        self._current = []
        self._pending = None
        self._running = True
        self._thread = threading.Thread(target=self._writer, name="log-manager", daemon=True)
        self._thread.start()
        return path

    def add(self, entry: LogEntry) -> bool:
        """Queue an entry; False if it was dropped because both buffers are full."""
        with self._cond:
            if not self._running:
                raise LogError("trying to log an entry while the logger isn't running")
            if self._pending is not None and len(self._current) >= self.buffer_len:
                logger.warning("logging buffer full, skipping log entry")
                return False
            self._current.append(entry)
            self.entries_logged += 1
            if len(self._current) >= self.buffer_len and self._pending is None:
                self._pending = self._current
                self._current = []
                self._cond.notify()
            return True

    def _write(self, entries: list[LogEntry]) -> None:
        self._file.writelines(format_entry(self.settings, e) for e in entries)
        self._file.flush()

    def _writer(self) -> None:
        interval = 1.0 / self.write_hz
        while True:
            with self._cond:
                if self._running and self._pending is None:
                    self._cond.wait(interval)
                batch, self._pending = self._pending, None
                running = self._running
            if batch:
                self._write(batch)
            if not running:
                break
        with self._cond:
            rest, self._current = self._current, []
        self._write(rest)
        self._file.close()
        self._file = None

    def stop(self) -> None:
        """Write out everything still buffered and close the log file."""
        with self._cond:
            if not self._running:
                return
            self._running = False
            self._cond.notify()
        thread, self._thread = self._thread, None
        thread.join(timeout=max(2.0, 4.0 / self.write_hz))
        if thread.is_alive():
            logger.warning("log manager thread exit timeout")

    def __enter__(self) -> LogManager:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.stop()
        return False