"""Create listing availability tables.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("host_id", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "booking_unit_type",
            sa.String(length=32),
            server_default="daily",
            nullable=False,
        ),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("min_advance_booking_hours", sa.Integer(), nullable=True),
        sa.Column("max_advance_booking_days", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_listings_host_id", "listings", ["host_id"], unique=False)
    op.create_index("ix_listings_operator_id", "listings", ["operator_id"], unique=False)

    op.create_table(
        "availability_windows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("slot_type", sa.String(length=32), server_default="regular", nullable=False),
        sa.Column("price_override", sa.Numeric(10, 2), nullable=True),
        sa.Column("booking_unit_type", sa.String(length=32), nullable=True),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("origin_listing_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["listing_id"], ["listings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["origin_listing_id"], ["listings.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_availability_windows_listing_id", "availability_windows", ["listing_id"], unique=False
    )
    op.create_index(
        "ix_availability_windows_listing_range",
        "availability_windows",
        ["listing_id", "start_at", "end_at"],
        unique=False,
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["listing_id"], ["listings.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_bookings_listing_id", "bookings", ["listing_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)

    op.create_table(
        "blocked_ranges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["listing_id"], ["listings.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_blocked_ranges_listing_id", "blocked_ranges", ["listing_id"], unique=False)
    op.create_index(
        "ix_blocked_ranges_listing_range",
        "blocked_ranges",
        ["listing_id", "start_at", "end_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_blocked_ranges_listing_range", table_name="blocked_ranges")
    op.drop_index("ix_blocked_ranges_listing_id", table_name="blocked_ranges")
    op.drop_table("blocked_ranges")

    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_listing_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_availability_windows_listing_range", table_name="availability_windows")
    op.drop_index("ix_availability_windows_listing_id", table_name="availability_windows")
    op.drop_table("availability_windows")

    op.drop_index("ix_listings_operator_id", table_name="listings")
    op.drop_index("ix_listings_host_id", table_name="listings")
    op.drop_table("listings")
