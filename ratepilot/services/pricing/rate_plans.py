"""Rate-plan resolver: map each PMS room type to the rate plan we push to.

Pushing to a net/package/agent plan silently reprices the wrong channel, so
names are classified before anything is picked.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from ratepilot.services.pricing.config import RatePlanKeywords, pricing_engine_config

logger = logging.getLogger(__name__)

TOXIC = "toxic"
PREFERRED = "preferred"
NEUTRAL = "neutral"


@dataclass(frozen=True)
class RatePlan:
    rate_id: str
    room_type_id: str
    name: str
    is_derived: bool = False

    @classmethod
    def from_pms(cls, raw: dict) -> "RatePlan | None":
        rate_id = raw.get("rateID") or raw.get("ratePlanID")
        room_type_id = raw.get("roomTypeID")
        if rate_id in (None, "") or room_type_id in (None, ""):
            return None
        name = (
            raw.get("ratePlanNamePrivate")
            or raw.get("ratePlanNamePublic")
            or raw.get("name")
            or ""
        )
        return cls(
            rate_id=str(rate_id),
            room_type_id=str(room_type_id),
            name=str(name),
            is_derived=_parse_flag(raw.get("isDerived")),
        )


def _parse_flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


_SEPARATOR = r"[\s\-_]*"


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Word start only, separators allowed inside ("Non-Ref"); "Internet" is not "net"
    body = _SEPARATOR.join(re.escape(ch) for ch in keyword.lower())
    return re.compile(rf"(?<![a-z0-9]){body}")


def _matches(name: str, keywords: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(_keyword_pattern(keyword).search(lowered) for keyword in keywords)


def classify_rate_plan_name(
    name: str, keywords: RatePlanKeywords = pricing_engine_config.rate_plans
) -> str:
    """Classify a plan name as toxic, preferred or neutral (toxic wins)."""
    if _matches(name, keywords.toxic):
        return TOXIC
    if _matches(name, keywords.preferred):
        return PREFERRED
    return NEUTRAL


def select_rate_plan(
    candidates: list[RatePlan],
    keywords: RatePlanKeywords = pricing_engine_config.rate_plans,
) -> RatePlan | None:
    """Pick one plan from a room type's non-derived candidates.

    Toxic names are filtered out unless that leaves nothing; from what
    survives a preferred name wins, else the first plan in PMS order.
    """
    if not candidates:
        return None

    pool = [p for p in candidates if classify_rate_plan_name(p.name, keywords) != TOXIC]
    if not pool:
        pool = list(candidates)

    for plan in pool:
        if _matches(plan.name, keywords.preferred):
            return plan
    return pool[0]


def build_rate_id_map(
    room_types: Iterable[dict],
    rate_plans: Iterable[dict],
    keywords: RatePlanKeywords = pricing_engine_config.rate_plans,
) -> dict[str, str]:
    """Return {room_type_id: rate_id}; room types with no candidate are omitted."""
    plans = [p for p in (RatePlan.from_pms(raw) for raw in rate_plans or []) if p]

    rate_id_map: dict[str, str] = {}
    for room in room_types or []:
        room_type_id = room.get("roomTypeID")
        if room_type_id in (None, ""):
            continue
        room_type_id = str(room_type_id)

        candidates = [p for p in plans if p.room_type_id == room_type_id and not p.is_derived]
        chosen = select_rate_plan(candidates, keywords)
        if chosen is None:
            logger.warning(f"No sellable rate plan for room type {room_type_id}; pushes will skip it")
            continue

        if classify_rate_plan_name(chosen.name, keywords) == TOXIC:
            logger.warning(
                f"Room type {room_type_id} only has restricted plans; using '{chosen.name}' ({chosen.rate_id})"
            )
        rate_id_map[room_type_id] = chosen.rate_id

    return rate_id_map
