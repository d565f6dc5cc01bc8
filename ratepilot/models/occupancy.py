"""Occupancy snapshots written by the ingestion pipeline. Read-only here."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ratepilot.database import Base


class PacingSnapshot(Base):
    __tablename__ = "pacing_snapshots"
    __table_args__ = (Index("idx_pacing_hotel_snapshot", "hotel_id", "snapshot_date", "stay_date"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    rooms_sold: Mapped[int] = mapped_column(Integer, default=0)


class DailyMetricsSnapshot(Base):
    __tablename__ = "daily_metrics_snapshots"
    __table_args__ = (Index("idx_daily_metrics_hotel_stay", "hotel_id", "stay_date"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stay_date: Mapped[date] = mapped_column(Date, nullable=False)
    rooms_sold: Mapped[int] = mapped_column(Integer, default=0)
    capacity_count: Mapped[int] = mapped_column(Integer, default=0)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
