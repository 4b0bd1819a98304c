"""
db/models/scraped_rate.py

Rate row: one price quote for one entity, one check-in date and one
adult count. Rows come from CSV reconciliation (bulk replace) or from the
scraper webhook (bulk append).
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class ScrapedRate(Base):
    __tablename__ = "scraped_rates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    property_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
    )
    competitor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("competitors.id", ondelete="CASCADE"),
        nullable=True,
    )
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    price_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="THB",
        server_default="THB",
    )
    room_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    adults: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=2,
        server_default="2",
    )
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "(property_id IS NULL) <> (competitor_id IS NULL)",
            name="ck_scraped_rates_single_owner",
        ),
        CheckConstraint("price_amount > 0", name="ck_scraped_rates_price_positive"),
        CheckConstraint("check_out_date > check_in_date", name="ck_scraped_rates_stay_order"),
        CheckConstraint("adults > 0", name="ck_scraped_rates_adults_positive"),
        Index("ix_scraped_rates_property_check_in", "property_id", "check_in_date"),
        Index("ix_scraped_rates_competitor_check_in", "competitor_id", "check_in_date"),
        Index("ix_scraped_rates_scraped_at", "scraped_at"),
    )
