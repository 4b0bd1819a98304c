"""create properties, competitors, scraped_rates and csv_uploads tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("booking_url", sa.String(length=1024), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True, comment="Display currency preference"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_properties_user_id", "properties", ["user_id"], unique=False)

    op.create_table(
        "competitors",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("booking_url", sa.String(length=1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_competitors_property_id", "competitors", ["property_id"], unique=False)

    op.create_table(
        "scraped_rates",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("competitor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("check_out_date", sa.Date(), nullable=False),
        sa.Column("price_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), server_default="THB", nullable=False),
        sa.Column("room_type", sa.String(length=255), nullable=True),
        sa.Column("adults", sa.Integer(), server_default="2", nullable=False),
        sa.Column("scraped_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "(property_id IS NULL) <> (competitor_id IS NULL)",
            name="ck_scraped_rates_single_owner",
        ),
        sa.CheckConstraint("price_amount > 0", name="ck_scraped_rates_price_positive"),
        sa.CheckConstraint("check_out_date > check_in_date", name="ck_scraped_rates_stay_order"),
        sa.CheckConstraint("adults > 0", name="ck_scraped_rates_adults_positive"),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scraped_rates_property_check_in",
        "scraped_rates",
        ["property_id", "check_in_date"],
        unique=False,
    )
    op.create_index(
        "ix_scraped_rates_competitor_check_in",
        "scraped_rates",
        ["competitor_id", "check_in_date"],
        unique=False,
    )
    op.create_index("ix_scraped_rates_scraped_at", "scraped_rates", ["scraped_at"], unique=False)

    op.create_table(
        "csv_uploads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("competitor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column(
            "file_path",
            sa.String(length=1024),
            nullable=False,
            comment="Relative path inside the rate CSV storage root",
        ),
        sa.Column("record_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "(property_id IS NULL) <> (competitor_id IS NULL)",
            name="ck_csv_uploads_single_owner",
        ),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_csv_uploads_user_id", "csv_uploads", ["user_id"], unique=False)
    op.create_index(
        "ix_csv_uploads_property_uploaded_at",
        "csv_uploads",
        ["property_id", "uploaded_at"],
        unique=False,
    )
    op.create_index(
        "ix_csv_uploads_competitor_uploaded_at",
        "csv_uploads",
        ["competitor_id", "uploaded_at"],
        unique=False,
    )
    op.create_index("ix_csv_uploads_uploaded_at", "csv_uploads", ["uploaded_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_csv_uploads_uploaded_at", table_name="csv_uploads")
    op.drop_index("ix_csv_uploads_competitor_uploaded_at", table_name="csv_uploads")
    op.drop_index("ix_csv_uploads_property_uploaded_at", table_name="csv_uploads")
    op.drop_index("ix_csv_uploads_user_id", table_name="csv_uploads")
    op.drop_table("csv_uploads")

    op.drop_index("ix_scraped_rates_scraped_at", table_name="scraped_rates")
    op.drop_index("ix_scraped_rates_competitor_check_in", table_name="scraped_rates")
    op.drop_index("ix_scraped_rates_property_check_in", table_name="scraped_rates")
    op.drop_table("scraped_rates")

    op.drop_index("ix_competitors_property_id", table_name="competitors")
    op.drop_table("competitors")

    op.drop_index("ix_properties_user_id", table_name="properties")
    op.drop_table("properties")
