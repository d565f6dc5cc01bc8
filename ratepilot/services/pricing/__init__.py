"""Pricing engine: pure rate math, no I/O.

Modules:
    config          Campaign classes, rate-plan keywords, calendar sources
    money           Decimal parsing/rounding helpers (never-zero normalization)
    waterfall       Live PMS rate -> public sell rate
    differentials   Base room rate -> dependent room rate
    guardrails      Freeze, floors and ceilings before publishing
    rate_plans      PMS catalog -> {room_type_id: rate_id}

Pipeline (per stay date):
    compute_sell_rate -> apply_guardrails -> compute_differential (per room)
"""
