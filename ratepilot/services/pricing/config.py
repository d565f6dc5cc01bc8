"""Pricing engine constants: campaign classes, rate-plan keywords, calendars."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CampaignRules:
    """Campaign slugs with special behaviour in the waterfall."""
    # Deep deals: when active and in range, the only discount applied.
    exclusive_slugs: frozenset[str] = frozenset({"black-friday", "limited-time"})
    # Any of these active and in range blocks the mobile discount.
    mobile_blocking_slugs: frozenset[str] = frozenset({"early-deal", "late-escape", "getaway-deal"})


@dataclass(frozen=True)
class WaterfallDefaults:
    """Defaults used when a hotel has not configured a stage."""
    multiplier: str = "1.3"
    mobile_active: bool = True
    mobile_percent: str = "10"
    non_ref_active: bool = True
    non_ref_percent: str = "15"
    country_active: bool = False
    country_percent: str = "5"
    guardrail_max: str = "400"


@dataclass(frozen=True)
class RatePlanKeywords:
    """Name heuristics for choosing the sellable rate plan of a room type.

    Toxic plans are never targeted unless nothing else exists; preferred
    plans win over the first-found fallback.
    """
    toxic: tuple[str, ...] = ("net", "package", "agent", "corp", "nonref")
    preferred: tuple[str, ...] = ("base", "standard", "rack", "bar")


@dataclass(frozen=True)
class CalendarSources:
    manual: str = "MANUAL"
    auto: str = "AUTO"
    ai_auto: str = "AI_AUTO"
    sync: str = "SYNC"
    frozen: str = "Frozen"
    ai: str = "AI"
    pms_locked: str = "PMS_LOCKED"

    @property
    def human_locked(self) -> frozenset[str]:
        return frozenset({self.manual, self.pms_locked})


MONTH_KEYS: tuple[str, ...] = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)

# Indexed by date.weekday() (Monday == 0)
WEEKDAY_KEYS: tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


@dataclass(frozen=True)
class PricingEngineConfig:
    campaigns: CampaignRules = field(default_factory=CampaignRules)
    defaults: WaterfallDefaults = field(default_factory=WaterfallDefaults)
    rate_plans: RatePlanKeywords = field(default_factory=RatePlanKeywords)
    sources: CalendarSources = field(default_factory=CalendarSources)


# Singleton, import this everywhere
pricing_engine_config = PricingEngineConfig()
