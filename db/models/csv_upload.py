"""
db/models/csv_upload.py

Audit trail of one CSV file ingested for a property or a competitor.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class CSVUpload(Base):
    """
    file_path points into blob storage; deleting the record must also
    delete the stored file.
    """

    __tablename__ = "csv_uploads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
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
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="Relative path inside the rate CSV storage root",
    )
    record_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "(property_id IS NULL) <> (competitor_id IS NULL)",
            name="ck_csv_uploads_single_owner",
        ),
        Index("ix_csv_uploads_user_id", "user_id"),
        Index("ix_csv_uploads_property_uploaded_at", "property_id", "uploaded_at"),
        Index("ix_csv_uploads_competitor_uploaded_at", "competitor_id", "uploaded_at"),
        Index("ix_csv_uploads_uploaded_at", "uploaded_at"),
    )

    def __repr__(self) -> str:
        return f"<CSVUpload id={self.id} file_name={self.file_name!r} records={self.record_count}>"
