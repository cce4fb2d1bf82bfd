"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates the booking lifecycle tables:
- bookings (status, schedule, per-phase confirmations, settlement split)
- booking_transactions (append-only ledger keyed by {booking_id}_{type})
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("renter_id", sa.String(128), nullable=False, index=True),
        sa.Column("owner_id", sa.String(128), nullable=False, index=True),
        sa.Column("vehicle_id", sa.String(128)),
        sa.Column("status", sa.String(32), nullable=False, index=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("commission_rate", sa.Numeric(5, 4)),
        sa.Column("platform_fee", sa.Numeric(12, 2)),
        sa.Column("host_earning", sa.Numeric(12, 2)),
        sa.Column("settled_at", sa.DateTime(timezone=True)),
        sa.Column("start_host_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("start_renter_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("end_host_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("end_renter_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completion_host_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completion_renter_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("damage_reported", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("admin_approved_at", sa.DateTime(timezone=True)),
        sa.Column("admin_approved_by", sa.String(128)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_bookings_status_end_time", "bookings", ["status", "end_time"])

    # ==================== LEDGER ====================
    op.create_table(
        "booking_transactions",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("booking_id", sa.String(64), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("type", sa.String(32), nullable=False, index=True),
        sa.Column("actor", sa.String(160), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
        sa.Column("override", sa.String(32)),
        sa.Column("renter_id", sa.String(128), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False, index=True),
        sa.Column("vehicle_id", sa.String(128)),
        sa.Column("gross_amount", sa.Numeric(12, 2)),
        sa.Column("commission_rate", sa.Numeric(5, 4)),
        sa.Column("platform_fee", sa.Numeric(12, 2)),
        sa.Column("host_earning", sa.Numeric(12, 2)),
        sa.Column("currency", sa.String(3)),
        sa.Column("details", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.UniqueConstraint("booking_id", "type", name="uq_booking_transactions_booking_type"),
    )

    # Append-only at the database level too
    op.execute(
        """
        CREATE OR REPLACE FUNCTION booking_transactions_immutable()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'booking_transactions is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER booking_transactions_no_update_delete
        BEFORE UPDATE OR DELETE ON booking_transactions
        FOR EACH ROW EXECUTE FUNCTION booking_transactions_immutable();
        """
    )


def downgrade() -> None:
    """Drop all tables."""
    op.execute("DROP TRIGGER IF EXISTS booking_transactions_no_update_delete ON booking_transactions")
    op.execute("DROP FUNCTION IF EXISTS booking_transactions_immutable()")
    op.drop_table("booking_transactions")
    op.drop_index("ix_bookings_status_end_time", table_name="bookings")
    op.drop_table("bookings")
