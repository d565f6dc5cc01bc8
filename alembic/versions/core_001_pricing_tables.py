"""Core: pricing config, rate calendar, history, predictions, occupancy snapshots

Revision ID: core_001
Revises:
Create Date: 2025-06-01
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "core_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- pricing_configurations ---
    op.create_table(
        "pricing_configurations",
        sa.Column("hotel_id", sa.String(64), primary_key=True),
        sa.Column("pms_property_id", sa.String(64)),
        sa.Column("multiplier", sa.Numeric(6, 3), server_default="1.3"),
        sa.Column("loyalty_percent", sa.Numeric(5, 2), server_default="0"),
        sa.Column("calculator_settings", JSONB, server_default="{}"),
        sa.Column("guardrail_max", sa.Numeric(10, 2)),
        sa.Column("rate_freeze_period", sa.Integer, server_default="0"),
        sa.Column("last_minute_floor", JSONB, server_default="{}"),
        sa.Column("monthly_min_rates", JSONB, server_default="{}"),
        sa.Column("base_room_type_id", sa.String(64)),
        sa.Column("room_differentials", JSONB, server_default="[]"),
        sa.Column("rate_id_map", JSONB),
        sa.Column("pms_room_types", JSONB),
        sa.Column("pms_rate_plans", JSONB),
        sa.Column("seasonality_profile", JSONB, server_default="{}"),
        sa.Column("rules", JSONB, server_default="{}"),
        sa.Column("total_capacity", sa.Integer, server_default="0"),
        sa.Column("last_pms_sync_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- daily_max_rates ---
    op.create_table(
        "daily_max_rates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("max_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("hotel_id", "stay_date", name="uq_daily_max_hotel_date"),
    )
    op.create_index("ix_daily_max_rates_hotel_id", "daily_max_rates", ["hotel_id"])

    # --- pace_curves ---
    op.create_table(
        "pace_curves",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("season_tier", sa.String(30), nullable=False),
        sa.Column("curve_data", JSONB, nullable=False),
        sa.UniqueConstraint("hotel_id", "season_tier", name="uq_pace_curve_hotel_tier"),
    )
    op.create_index("ix_pace_curves_hotel_id", "pace_curves", ["hotel_id"])

    # --- rate_calendar ---
    op.create_table(
        "rate_calendar",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("room_type_id", sa.String(64), nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("hotel_id", "room_type_id", "stay_date", name="uq_rate_calendar_key"),
        # Rates are never published at or below zero
        sa.CheckConstraint("rate > 0", name="ck_rate_calendar_positive"),
    )

    # --- price_history ---
    op.create_table(
        "price_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("room_type_id", sa.String(64), nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("old_price", sa.Numeric(10, 2)),
        sa.Column("new_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_price_history_hotel_date", "price_history", ["hotel_id", "stay_date", "created_at"])

    # --- rate_predictions ---
    op.create_table(
        "rate_predictions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("room_type_id", sa.String(64), nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("suggested_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("confidence_score", sa.Numeric(4, 3), server_default="0"),
        sa.Column("reasoning", sa.Text),
        sa.Column("model_version", sa.String(30), server_default="v1.0"),
        sa.Column("is_applied", sa.Boolean, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("hotel_id", "room_type_id", "stay_date", name="uq_rate_prediction_key"),
    )

    # --- occupancy (written by ingestion) ---
    op.create_table(
        "pacing_snapshots",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("snapshot_date", sa.Date, nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("rooms_sold", sa.Integer, server_default="0"),
    )
    op.create_index("idx_pacing_hotel_snapshot", "pacing_snapshots", ["hotel_id", "snapshot_date", "stay_date"])

    op.create_table(
        "daily_metrics_snapshots",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("stay_date", sa.Date, nullable=False),
        sa.Column("rooms_sold", sa.Integer, server_default="0"),
        sa.Column("capacity_count", sa.Integer, server_default="0"),
        sa.Column("captured_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_daily_metrics_hotel_stay", "daily_metrics_snapshots", ["hotel_id", "stay_date"])


def downgrade() -> None:
    op.drop_table("daily_metrics_snapshots")
    op.drop_table("pacing_snapshots")
    op.drop_table("rate_predictions")
    op.drop_table("price_history")
    op.drop_table("rate_calendar")
    op.drop_table("pace_curves")
    op.drop_table("daily_max_rates")
    op.drop_table("pricing_configurations")
