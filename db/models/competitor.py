"""
db/models/competitor.py

Competitor model: a rival hotel tracked for one property.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.property import Property


class Competitor(Base, TimestampMixin):
    __tablename__ = "competitors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    property_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    booking_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    property: Mapped["Property"] = relationship(
        "Property",
        back_populates="competitors",
    )

    __table_args__ = (Index("ix_competitors_property_id", "property_id"),)

    def __repr__(self) -> str:
        return f"<Competitor id={self.id} name={self.name!r} property_id={self.property_id}>"
