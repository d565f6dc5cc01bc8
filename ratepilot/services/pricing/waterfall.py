"""Waterfall: live PMS rate -> public sell rate.

Stage order is fixed; reordering the multiplications changes the result:

    multiplier -> non-refundable -> exclusive tax -> (deep deal | loyalty ->
    best campaign -> mobile -> country) -> round
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ratepilot.schemas.pricing import Campaign, HotelPricingConfig
from ratepilot.services.pricing.config import pricing_engine_config
from ratepilot.services.pricing.money import finalize_rate, percent_factor, to_positive_rate

_DEFAULTS = pricing_engine_config.defaults
_CAMPAIGNS = pricing_engine_config.campaigns


@dataclass(frozen=True)
class PricingContext:
    """Everything the waterfall needs besides the live rate and the date."""
    multiplier: Decimal = Decimal(_DEFAULTS.multiplier)
    tax_type: str = "inclusive"
    tax_percent: Decimal = Decimal("0")
    campaigns: tuple[Campaign, ...] = field(default_factory=tuple)
    mobile_active: bool = _DEFAULTS.mobile_active
    mobile_percent: Decimal = Decimal(_DEFAULTS.mobile_percent)
    non_ref_active: bool = _DEFAULTS.non_ref_active
    non_ref_percent: Decimal = Decimal(_DEFAULTS.non_ref_percent)
    country_active: bool = _DEFAULTS.country_active
    country_percent: Decimal = Decimal(_DEFAULTS.country_percent)
    loyalty_percent: Decimal = Decimal("0")

    @classmethod
    def from_config(cls, config: HotelPricingConfig) -> "PricingContext":
        return cls(
            multiplier=config.multiplier,
            tax_type=config.tax.type,
            tax_percent=config.tax.percent,
            campaigns=tuple(config.campaigns),
            mobile_active=config.mobile.active,
            mobile_percent=config.mobile.percent,
            non_ref_active=config.non_ref.active,
            non_ref_percent=config.non_ref.percent,
            country_active=config.country.active,
            country_percent=config.country.percent,
            loyalty_percent=config.loyalty_percent,
        )


def _live_campaigns(campaigns: tuple[Campaign, ...], stay_date: date) -> list[Campaign]:
    return [c for c in campaigns if c.active and c.covers(stay_date)]


def find_deep_deal(campaigns: tuple[Campaign, ...], stay_date: date) -> Campaign | None:
    """First active, in-range exclusive campaign, if any."""
    for campaign in _live_campaigns(campaigns, stay_date):
        if campaign.slug in _CAMPAIGNS.exclusive_slugs:
            return campaign
    return None


def best_standard_campaign(campaigns: tuple[Campaign, ...], stay_date: date) -> Campaign | None:
    """Largest-discount standard campaign; ties go to the first one listed."""
    standard = [
        c for c in _live_campaigns(campaigns, stay_date)
        if c.slug not in _CAMPAIGNS.exclusive_slugs
    ]
    if not standard:
        return None
    return max(standard, key=lambda c: c.discount)


def is_mobile_blocked(campaigns: tuple[Campaign, ...], stay_date: date) -> bool:
    live = _live_campaigns(campaigns, stay_date)
    return any(
        c.slug in _CAMPAIGNS.exclusive_slugs or c.slug in _CAMPAIGNS.mobile_blocking_slugs
        for c in live
    )


def compute_sell_rate(live_rate, context: PricingContext, stay_date: date) -> Decimal | None:
    """Turn the PMS live rate into the public sell rate for ``stay_date``.

    Returns None for an invalid live rate or a non-positive result; never 0.
    """
    base = to_positive_rate(live_rate)
    if base is None or context is None:
        return None

    rate = base * context.multiplier

    if context.non_ref_active:
        rate *= percent_factor(context.non_ref_percent)

    # Tax lands after hotel-level discounts and before OTA-level ones
    if context.tax_type == "exclusive" and context.tax_percent > 0:
        rate *= percent_factor(context.tax_percent, sign=1)

    deep_deal = find_deep_deal(context.campaigns, stay_date)
    if deep_deal is not None:
        rate *= percent_factor(deep_deal.discount)
    else:
        if context.loyalty_percent > 0:
            rate *= percent_factor(context.loyalty_percent)

        best = best_standard_campaign(context.campaigns, stay_date)
        if best is not None:
            rate *= percent_factor(best.discount)

        if context.mobile_active and not is_mobile_blocked(context.campaigns, stay_date):
            rate *= percent_factor(context.mobile_percent)

        if context.country_active:
            rate *= percent_factor(context.country_percent)

    return finalize_rate(rate)
