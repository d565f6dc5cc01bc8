"""Typed per-hotel pricing configuration.

JSON only exists in the JSONB columns; everything in memory goes through
these models so a bad payload fails validation before it reaches the engine.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ratepilot.services.pricing.config import MONTH_KEYS, WEEKDAY_KEYS, pricing_engine_config
from ratepilot.services.pricing.money import as_date, to_decimal

_DEFAULTS = pricing_engine_config.defaults

# JS-style getDay() numbering (Sunday == 0), as stored by older configs
_JS_DAY_INDEX = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class TaxSettings(BaseModel):
    type: Literal["inclusive", "exclusive"] = "inclusive"
    percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class DiscountToggle(BaseModel):
    active: bool = False
    percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class Campaign(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slug: str
    discount: Decimal = Field(ge=0, le=100)
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    active: bool = True

    @field_validator("slug")
    @classmethod
    def _normalize_slug(cls, v: str) -> str:
        return v.strip().lower()

    def covers(self, stay_date: date) -> bool:
        return self.start_date <= stay_date <= self.end_date


class LastMinuteFloor(BaseModel):
    enabled: bool = False
    days: int = Field(default=0, ge=0)
    rate: Decimal = Field(default=Decimal("0"), ge=0)
    dow: frozenset[str] = frozenset()

    @field_validator("days", mode="before")
    @classmethod
    def _parse_days(cls, v: Any) -> int:
        if v in (None, ""):
            return 0
        return int(v)

    @field_validator("rate", mode="before")
    @classmethod
    def _parse_rate(cls, v: Any) -> Decimal:
        return to_decimal(v) or Decimal("0")

    @field_validator("dow", mode="before")
    @classmethod
    def _normalize_dow(cls, v: Any) -> frozenset[str]:
        days = set()
        for item in v or []:
            if isinstance(item, int) and not isinstance(item, bool):
                days.add(_JS_DAY_INDEX[item % 7])
                continue
            key = str(item).strip().lower()[:3]
            if key not in WEEKDAY_KEYS:
                raise ValueError(f"Unknown weekday {item!r}")
            days.add(key)
        return frozenset(days)


class RoomDifferentialRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_type_id: str = Field(alias="roomTypeId")
    operator: Literal["+", "-"] = "+"
    value: Decimal | None = None

    @field_validator("room_type_id", mode="before")
    @classmethod
    def _stringify_room(cls, v: Any) -> str:
        return str(v)

    @field_validator("value", mode="before")
    @classmethod
    def _lenient_value(cls, v: Any) -> Decimal | None:
        # A non-numeric value disables the rule rather than the whole config
        return to_decimal(v)


class HotelPricingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hotel_id: str
    pms_property_id: str | None = None

    # Waterfall
    multiplier: Decimal = Field(default=Decimal(_DEFAULTS.multiplier), gt=0)
    tax: TaxSettings = Field(default_factory=TaxSettings)
    campaigns: list[Campaign] = Field(default_factory=list)
    mobile: DiscountToggle = Field(
        default_factory=lambda: DiscountToggle(
            active=_DEFAULTS.mobile_active, percent=Decimal(_DEFAULTS.mobile_percent)
        )
    )
    non_ref: DiscountToggle = Field(
        default_factory=lambda: DiscountToggle(
            active=_DEFAULTS.non_ref_active, percent=Decimal(_DEFAULTS.non_ref_percent)
        ),
        alias="nonRef",
    )
    country: DiscountToggle = Field(
        default_factory=lambda: DiscountToggle(
            active=_DEFAULTS.country_active, percent=Decimal(_DEFAULTS.country_percent)
        )
    )
    loyalty_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    # Guardrails
    guardrail_max: Decimal | None = Decimal(_DEFAULTS.guardrail_max)
    rate_freeze_period: int = Field(default=0, ge=0)
    last_minute_floor: LastMinuteFloor = Field(default_factory=LastMinuteFloor)
    monthly_min_rates: dict[str, Decimal] = Field(default_factory=dict)
    daily_max_rates: dict[date, Decimal] = Field(default_factory=dict)

    # Room topology
    base_room_type_id: str | None = None
    room_differentials: list[RoomDifferentialRule] = Field(default_factory=list)
    rate_id_map: dict[str, str] | None = None

    # Strategy fields surfaced to the AI bridge
    seasonality_profile: dict = Field(default_factory=dict)
    rules: dict = Field(default_factory=dict)
    total_capacity: int = 0

    @field_validator("rate_freeze_period", mode="before")
    @classmethod
    def _parse_freeze(cls, v: Any) -> int:
        if v in (None, ""):
            return 0
        return int(v)

    @field_validator("guardrail_max", mode="before")
    @classmethod
    def _parse_max(cls, v: Any) -> Decimal | None:
        parsed = to_decimal(v)
        return parsed if parsed is not None and parsed > 0 else None

    @field_validator("monthly_min_rates", mode="before")
    @classmethod
    def _normalize_months(cls, v: Any) -> dict[str, Decimal]:
        normalized: dict[str, Decimal] = {}
        for key, raw in (v or {}).items():
            month = str(key).strip().lower()
            if month.isdigit():
                index = int(month)
                if not 1 <= index <= 12:
                    raise ValueError(f"Month index out of range: {key!r}")
                month = MONTH_KEYS[index - 1]
            month = month[:3]
            if month not in MONTH_KEYS:
                raise ValueError(f"Unknown month key {key!r}")
            value = to_decimal(raw)
            if value is None:
                continue
            if value < 0:
                raise ValueError(f"Monthly minimum for {month} is negative")
            normalized[month] = value
        return normalized

    @field_validator("daily_max_rates", mode="before")
    @classmethod
    def _normalize_daily_max(cls, v: Any) -> dict[date, Decimal]:
        normalized: dict[date, Decimal] = {}
        for key, raw in (v or {}).items():
            value = to_decimal(raw)
            if value is None or value <= 0:
                continue
            normalized[as_date(key)] = value
        return normalized

    @field_validator("rate_id_map", mode="before")
    @classmethod
    def _stringify_map(cls, v: Any) -> dict[str, str] | None:
        if v is None:
            return None
        return {str(k): str(val) for k, val in v.items() if val not in (None, "")}

    @field_validator("base_room_type_id", "pms_property_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return str(v)

    def monthly_min_for(self, stay_date: date) -> Decimal:
        return self.monthly_min_rates.get(MONTH_KEYS[stay_date.month - 1], Decimal("0"))

    def daily_max_for(self, stay_date: date) -> Decimal | None:
        return self.daily_max_rates.get(stay_date)

    def rate_id_for(self, room_type_id: str) -> str | None:
        return (self.rate_id_map or {}).get(str(room_type_id))
