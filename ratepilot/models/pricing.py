"""Per-hotel pricing configuration, daily ceilings and pace curves."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ratepilot.database import Base


class PricingConfiguration(Base):
    __tablename__ = "pricing_configurations"

    hotel_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pms_property_id: Mapped[str | None] = mapped_column(String(64))
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=Decimal("1.3"))
    loyalty_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    # tax / campaigns / mobile / nonRef / country blocks
    calculator_settings: Mapped[dict] = mapped_column(JSONB, default=dict)
    guardrail_max: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    rate_freeze_period: Mapped[int] = mapped_column(Integer, default=0)
    last_minute_floor: Mapped[dict] = mapped_column(JSONB, default=dict)
    monthly_min_rates: Mapped[dict] = mapped_column(JSONB, default=dict)
    base_room_type_id: Mapped[str | None] = mapped_column(String(64))
    room_differentials: Mapped[list] = mapped_column(JSONB, default=list)
    rate_id_map: Mapped[dict | None] = mapped_column(JSONB)
    pms_room_types: Mapped[list | None] = mapped_column(JSONB)
    pms_rate_plans: Mapped[list | None] = mapped_column(JSONB)
    seasonality_profile: Mapped[dict] = mapped_column(JSONB, default=dict)
    rules: Mapped[dict] = mapped_column(JSONB, default=dict)
    total_capacity: Mapped[int] = mapped_column(Integer, default=0)
    last_pms_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DailyMaxRate(Base):
    __tablename__ = "daily_max_rates"
    __table_args__ = (UniqueConstraint("hotel_id", "stay_date", name="uq_daily_max_hotel_date"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    max_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PaceCurve(Base):
    __tablename__ = "pace_curves"
    __table_args__ = (UniqueConstraint("hotel_id", "season_tier", name="uq_pace_curve_hotel_tier"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    season_tier: Mapped[str] = mapped_column(String(30), nullable=False)
    curve_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
