from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class RateDecision(BaseModel):
    """One shadow rate proposal from the AI bridge."""

    hotel_id: str
    room_type_id: str
    stay_date: date
    suggested_rate: Decimal = Field(gt=0)
    confidence_score: Decimal = Decimal("0")
    reasoning: str | None = None
    model_version: str = "v1.0"

    @field_validator("hotel_id", "room_type_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    @field_validator("stay_date", mode="before")
    @classmethod
    def _date_prefix(cls, v):
        # Accept full ISO timestamps; only the calendar day matters
        if isinstance(v, str):
            return v.strip()[:10]
        return v

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _default_confidence(cls, v):
        return Decimal("0") if v in (None, "") else v

    @field_validator("model_version", mode="before")
    @classmethod
    def _default_version(cls, v):
        return v or "v1.0"
