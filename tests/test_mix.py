import sys

import pytest

from rocketctl.mix import MixError, Mixer, RotorLayout
from rocketctl.models import MAX_ROTORS, Channel


@pytest.fixture
def plus():
    return Mixer(RotorLayout.FOUR_PLUS)


@pytest.fixture
def cross():
    return Mixer(RotorLayout.FOUR_X)


def test_unknown_layout_rejected():
    with pytest.raises(MixError):
        Mixer("hexacopter")


def test_layout_dimensions(plus, cross):
    assert plus.rotors == 4
    assert cross.rotors == 4
    assert plus.dof == 6
    assert cross.dof == 4


def test_layout_from_value():
    assert Mixer("4plus").layout is RotorLayout.FOUR_PLUS


def test_all_controls_zero_input(plus):
    assert plus.all_controls([0.0] * 6) == [0.0] * 4


@pytest.mark.parametrize(
    "u",
    [
        [-1.0, 0, 0, 0, 0.4, -0.4],
        [2.0, 0, 0, 0, 3.0, 3.0],
        [-5.0, 0, 0, 0, -3.0, 3.0],
    ],
)
def test_all_controls_saturates(plus, cross, u):
    for mixer in (plus, cross):
        out = mixer.all_controls(u)
        assert len(out) == 4
        assert all(0.0 <= m <= 1.0 for m in out)


def test_all_controls_needs_six_inputs(plus):
    with pytest.raises(MixError):
        plus.all_controls([0.0] * 5)


def test_all_controls_matches_sequential_add(plus):
    u = [-0.4, 0.0, 0.0, 0.0, 0.2, -0.1]
    mot = [0.0] * 4
    for ch, value in enumerate(u):
        mot = plus.add_input(value, ch, mot)
    assert plus.all_controls(u) == pytest.approx(mot)


def test_add_input_does_not_mutate(plus):
    mot = [0.5] * MAX_ROTORS
    out = plus.add_input(0.4, Channel.PITCH, mot)
    assert mot == [0.5] * MAX_ROTORS
    assert len(out) == MAX_ROTORS
    assert out[4:] == mot[4:]
    assert out[0] > 0.5 > out[2]


def test_add_input_zero_is_identity(plus):
    mot = [0.1, 0.2, 0.3, 0.4]
    assert plus.add_input(0.0, Channel.YAW, mot) == mot


def test_add_input_saturates(cross):
    out = cross.add_input(10.0, Channel.YAW, [0.5] * 4)
    assert all(0.0 <= m <= 1.0 for m in out)
    assert 1.0 in out and 0.0 in out


def test_cross_layout_rejects_low_channels(cross):
    for ch in (Channel.X, Channel.Y):
        with pytest.raises(MixError):
            cross.add_input(0.1, ch, [0.5] * 4)
        with pytest.raises(MixError):
            cross.check_saturation(ch, [0.5] * 4)


def test_channel_six_out_of_bounds(plus):
    with pytest.raises(MixError):
        plus.add_input(0.1, 6, [0.5] * 4)


def test_short_signal_list_rejected(plus):
    with pytest.raises(MixError):
        plus.add_input(0.1, Channel.PITCH, [0.5] * 3)


def test_check_saturation_rejects_out_of_range_signal(plus):
    with pytest.raises(MixError):
        plus.check_saturation(Channel.PITCH, [0.5, 1.2, 0.5, 0.5])
    with pytest.raises(MixError):
        plus.check_saturation(Channel.PITCH, [-0.1, 0.5, 0.5, 0.5])


def test_check_saturation_unused_channel_unbounded(plus):
    lo, hi = plus.check_saturation(Channel.Y, [0.5] * 4)
    assert lo == -sys.float_info.max
    assert hi == sys.float_info.max


def test_check_saturation_worked_example(plus):
    assert plus.check_saturation(Channel.PITCH, [0.5] * 4) == pytest.approx((-1.0, 1.0))


@pytest.mark.parametrize("ch", [Channel.ROLL, Channel.PITCH, Channel.YAW, Channel.X])
@pytest.mark.parametrize("mot", [[0.5] * 4, [0.2, 0.7, 0.9, 0.1], [0.0, 1.0, 0.3, 0.6]])
def test_limits_keep_signals_in_range(plus, ch, mot):
    lo, hi = plus.check_saturation(ch, mot)
    if hi == sys.float_info.max:
        return_values = [plus.add_input(1.0, ch, mot)]
    else:
        return_values = [plus.add_input(hi, ch, mot), plus.add_input(lo, ch, mot)]
    for out in return_values:
        assert all(0.0 <= m <= 1.0 for m in out)
    assert lo <= hi


@pytest.mark.parametrize("ch", [Channel.PITCH, Channel.YAW])
def test_max_limit_reaches_a_bound(cross, ch):
    mot = [0.3, 0.6, 0.4, 0.8]
    lo, hi = cross.check_saturation(ch, mot)
    up = cross.add_input(hi, ch, mot)
    down = cross.add_input(lo, ch, mot)
    assert any(m == pytest.approx(1.0) or m == pytest.approx(0.0) for m in up)
    assert any(m == pytest.approx(1.0) or m == pytest.approx(0.0) for m in down)