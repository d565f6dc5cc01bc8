from ratepilot.models.calendar import PriceHistory, RateCalendarEntry, RatePrediction
from ratepilot.models.occupancy import DailyMetricsSnapshot, PacingSnapshot
from ratepilot.models.pricing import DailyMaxRate, PaceCurve, PricingConfiguration

__all__ = [
    "DailyMaxRate",
    "DailyMetricsSnapshot",
    "PaceCurve",
    "PacingSnapshot",
    "PriceHistory",
    "PricingConfiguration",
    "RateCalendarEntry",
    "RatePrediction",
]
