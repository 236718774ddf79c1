import math

from src.services.comparison import descriptor, percent_change, points_descriptor
from src.utils.constants import Tone


def test_growth_from_zero_is_full_growth():
    result = descriptor(5, 0)

    assert result.label == "+100%"
    assert result.tone == Tone.POSITIVE


def test_zero_against_zero_is_no_change():
    result = descriptor(0, 0)

    assert result.label == "no change"
    assert result.tone == Tone.NEUTRAL


def test_small_decline_keeps_one_decimal():
    result = descriptor(1000, 1050)

    assert result.label == "-4.8%"
    assert result.tone == Tone.NEGATIVE


def test_equal_values_are_stable():
    result = descriptor(120, 120)

    assert result.label == "stable"
    assert result.tone == Tone.NEUTRAL


def test_whole_percent_drops_trailing_zero():
    assert descriptor(150, 100).label == "+50%"


def test_large_change_rounds_to_integer():
    assert descriptor(300, 100).label == "+200%"
    assert descriptor(350, 80).label == "+338%"


def test_non_finite_current_reads_as_zero():
    assert descriptor(math.nan, 10).label == "-100%"
    assert descriptor(5, math.inf).label == "+100%"


def test_percent_change_without_baseline():
    assert percent_change(10, 0) == 0.0


def test_points_descriptor():
    up = points_descriptor(45.0, 40.0)
    down = points_descriptor(30.0, 42.5)

    assert (up.label, up.tone) == ("+5 pts", Tone.POSITIVE)
    assert (down.label, down.tone) == ("-12.5 pts", Tone.NEGATIVE)
    assert points_descriptor(40.2, 40.0).label == "stable"


def test_points_descriptor_with_unknown_share():
    gained = points_descriptor(35.0, math.nan)

    assert (gained.label, gained.tone) == ("+35 pts", Tone.POSITIVE)
    assert points_descriptor(math.inf, 20.0).label == "-20 pts"
    assert points_descriptor(math.nan, math.inf).label == "stable"
