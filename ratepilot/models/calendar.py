"""Rate calendar, price history and shadow AI predictions."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Index, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ratepilot.database import Base


class RateCalendarEntry(Base):
    __tablename__ = "rate_calendar"
    __table_args__ = (
        UniqueConstraint("hotel_id", "room_type_id", "stay_date", name="uq_rate_calendar_key"),
        CheckConstraint("rate > 0", name="ck_rate_calendar_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    room_type_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # MANUAL | AUTO | AI_AUTO | SYNC | ...
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PriceHistory(Base):
    __tablename__ = "price_history"
    __table_args__ = (Index("idx_price_history_hotel_date", "hotel_id", "stay_date", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    room_type_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    old_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    new_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RatePrediction(Base):
    __tablename__ = "rate_predictions"
    __table_args__ = (
        UniqueConstraint("hotel_id", "room_type_id", "stay_date", name="uq_rate_prediction_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    room_type_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    suggested_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    confidence_score: Mapped[Decimal] = mapped_column(Numeric(4, 3), default=0)
    reasoning: Mapped[str | None] = mapped_column(Text)
    model_version: Mapped[str] = mapped_column(String(30), default="v1.0")
    is_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
