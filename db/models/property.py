"""
db/models/property.py

Property model: the user's own hotel whose rates are compared against
its competitors.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.competitor import Competitor


class Property(Base, TimestampMixin):
    """
    One hotel owned by one user.

    user_id references the identity provider's user; there is no local users
    table, so it carries no foreign key.
    """

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    booking_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
        comment="Display currency preference",
    )

    competitors: Mapped[list["Competitor"]] = relationship(
        "Competitor",
        back_populates="property",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("ix_properties_user_id", "user_id"),)

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r} user_id={self.user_id}>"
