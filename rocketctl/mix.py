"""Mixing of control inputs into normalised actuator signals."""

from __future__ import annotations

import enum
import sys
from collections.abc import Sequence

_NUM_INPUTS = 6


class RotorLayout(enum.Enum):
    """Supported actuator layouts."""

    FOUR_X = "4x"
    FOUR_PLUS = "4plus"


class MixError(ValueError):
    """Raised on an invalid channel or out-of-range actuator signal."""


# columns: X Y Z Roll Pitch Yaw; rows: actuators 1-4
_MIX_4X = (
    (-1.0, 0.0, 0.0, 0.0, -0.5, 0.5),
    (-1.0, 0.0, 0.0, 0.0, 0.5, 0.5),
    (-1.0, 0.0, 0.0, 0.0, 0.5, -0.5),
    (-1.0, 0.0, 0.0, 0.0, -0.5, -0.5),
)

_MIX_4PLUS = (
    (-1.0, 0.0, 0.0, 0.0, 0.5, 0.0),
    (-1.0, 0.0, 0.0, 0.0, 0.0, -0.5),
    (-1.0, 0.0, 0.0, 0.0, -0.5, 0.0),
    (-1.0, 0.0, 0.0, 0.0, 0.0, 0.5),
)

_LAYOUTS = {
    RotorLayout.FOUR_X: (_MIX_4X, 4),
    RotorLayout.FOUR_PLUS: (_MIX_4PLUS, 6),
}


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class Mixer:
    """Maps control inputs onto actuators through a fixed mixing matrix."""

    def __init__(self, layout):
        try:
            layout = RotorLayout(layout)
            self.matrix, self.dof = _LAYOUTS[layout]
        except (ValueError, KeyError):
            raise MixError(f"unknown rotor layout: {layout!r}") from None
        self.layout = layout
        self.rotors = len(self.matrix)

    @property
    def _min_channel(self) -> int:
        return 2 if self.dof == 4 else 0

    def _check_channel(self, ch: int) -> int:
        ch = int(ch)
        if ch < self._min_channel or ch >= _NUM_INPUTS:
            raise MixError(f"channel {ch} out of bounds for layout {self.layout.value}")
        return ch

    def _check_length(self, mot: Sequence[float]) -> None:
        if len(mot) < self.rotors:
            raise MixError(
                f"need at least {self.rotors} actuator signals, got {len(mot)}"
            )

    def all_controls(self, u: Sequence[float]) -> list[float]:
        """Mix all six control inputs into saturated actuator signals."""
        if len(u) != _NUM_INPUTS:
            raise MixError(f"expected {_NUM_INPUTS} control inputs, got {len(u)}")
        return [
            _clamp(sum(coef * ui for coef, ui in zip(row, u))) for row in self.matrix
        ]

    def check_saturation(self, ch, mot: Sequence[float]) -> tuple[float, float]:
        """Return the (min, max) input on a channel that keeps every actuator in [0, 1]."""
        ch = self._check_channel(ch)
        self._check_length(mot)
        signals = mot[: self.rotors]
        if any(m > 1.0 or m < 0.0 for m in signals):
            raise MixError("actuator signal already out of bounds")

        new_max = sys.float_info.max
        new_min = -sys.float_info.max
        for row, m in zip(self.matrix, signals):
            coef = row[ch]
            if coef == 0.0:
                continue
            if coef > 0.0:
                upper, lower = (1.0 - m) / coef, -m / coef
            else:
                upper, lower = -m / coef, (1.0 - m) / coef
            new_max = min(new_max, upper)
            new_min = max(new_min, lower)
        return new_min, new_max

    def add_input(self, u: float, ch, mot: Sequence[float]) -> list[float]:
        """Return the actuator signals with input u added on channel ch, saturated."""
        ch = self._check_channel(ch)
        self._check_length(mot)
        result = list(mot)
        for i, row in enumerate(self.matrix):
            result[i] = _clamp(result[i] + u * row[ch])
        return result