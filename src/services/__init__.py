from src.services import (
    aggregator,
    comparison,
    forecast,
    insights,
    normalizer,
    occupancy,
    period,
    report,
    shifts,
    upstream,
)

__all__ = [
    "normalizer",
    "period",
    "aggregator",
    "comparison",
    "occupancy",
    "shifts",
    "insights",
    "forecast",
    "report",
    "upstream",
]
