import math

from src.schemas.analytics import Descriptor
from src.utils.constants import ONE_DECIMAL_LIMIT, STABLE_THRESHOLD, Tone
from src.utils.dates import round_half_up

NO_CHANGE = Descriptor(label="no change", tone=Tone.NEUTRAL)
STABLE = Descriptor(label="stable", tone=Tone.NEUTRAL)
FULL_GROWTH = Descriptor(label="+100%", tone=Tone.POSITIVE)


def format_number(value: float) -> str:
    # Integers render without a trailing ".0"
    if value == int(value):
        return str(int(value))
    return str(value)


def percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def descriptor(current: float, previous: float) -> Descriptor:
    """
    Describe the relative change from ``previous`` to ``current``.

    Changes under half a percent read as "stable". Magnitudes up to 99% keep
    one decimal; larger ones are rounded to a whole percent.
    """
    if not math.isfinite(current):
        current = 0.0
    if not math.isfinite(previous) or previous == 0:
        return FULL_GROWTH if current != 0 else NO_CHANGE

    percent = percent_change(current, previous)
    if abs(percent) < STABLE_THRESHOLD:
        return STABLE

    digits = 1 if abs(percent) <= ONE_DECIMAL_LIMIT else 0
    value = round_half_up(percent, digits)
    sign = "+" if value > 0 else ""
    return Descriptor(
        label=f"{sign}{format_number(value)}%",
        tone=Tone.POSITIVE if percent > 0 else Tone.NEGATIVE,
    )


def points_descriptor(current_pct: float, previous_pct: float) -> Descriptor:
    """Absolute change between two shares, in percentage points."""
    # Unknown shares count as zero so the label stays in points
    if not math.isfinite(previous_pct):
        previous_pct = 0.0
    if not math.isfinite(current_pct):
        current_pct = 0.0

    delta = current_pct - previous_pct
    if abs(delta) < STABLE_THRESHOLD:
        return STABLE

    value = round_half_up(delta, 1)
    sign = "+" if value > 0 else ""
    return Descriptor(
        label=f"{sign}{format_number(value)} pts",
        tone=Tone.POSITIVE if value > 0 else Tone.NEGATIVE,
    )
