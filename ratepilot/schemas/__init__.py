from ratepilot.schemas.decisions import RateDecision
from ratepilot.schemas.pricing import (
    Campaign,
    DiscountToggle,
    HotelPricingConfig,
    LastMinuteFloor,
    RoomDifferentialRule,
    TaxSettings,
)

__all__ = [
    "Campaign",
    "DiscountToggle",
    "HotelPricingConfig",
    "LastMinuteFloor",
    "RateDecision",
    "RoomDifferentialRule",
    "TaxSettings",
]
