"""Differential engine: derive a dependent room's rate from the base room rate."""

from collections.abc import Iterable
from decimal import Decimal

from ratepilot.schemas.pricing import RoomDifferentialRule
from ratepilot.services.pricing.money import finalize_rate, percent_factor, to_positive_rate


def find_rule(
    room_type_id: str, rules: Iterable[RoomDifferentialRule] | None
) -> RoomDifferentialRule | None:
    """At most one rule applies per room type: the first listed."""
    for rule in rules or ():
        if rule.room_type_id == str(room_type_id):
            return rule
    return None


def compute_differential(
    base_rate, target_room_type_id: str, rules: Iterable[RoomDifferentialRule] | None
) -> Decimal | None:
    # An invalid base kills the whole derived chain
    base = to_positive_rate(base_rate)
    if base is None:
        return None

    rule = find_rule(target_room_type_id, rules)
    if rule is None or rule.value is None:
        return base

    sign = 1 if rule.operator == "+" else -1
    return finalize_rate(base * percent_factor(rule.value, sign=sign))
