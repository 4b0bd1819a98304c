"""
app/domain/rates.py

Domain models shared by the CSV upload, webhook and export flows.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

DEFAULT_CURRENCY = "THB"
DEFAULT_ADULTS = 2


class EntityType:
    """Kinds of owning entity a rate row or upload can belong to."""

    PROPERTY = "property"
    COMPETITOR = "competitor"


@dataclass(frozen=True)
class EntityRef:
    """
    Reference to exactly one owning entity (a property or a competitor).
    """

    entity_type: str
    entity_id: uuid.UUID

    def __post_init__(self) -> None:
        if self.entity_type not in (EntityType.PROPERTY, EntityType.COMPETITOR):
            raise ValueError(f"Unknown entity type: {self.entity_type!r}")

    @classmethod
    def for_property(cls, entity_id: uuid.UUID) -> "EntityRef":
        return cls(EntityType.PROPERTY, entity_id)

    @classmethod
    def for_competitor(cls, entity_id: uuid.UUID) -> "EntityRef":
        return cls(EntityType.COMPETITOR, entity_id)

    @classmethod
    def from_owner_ids(
        cls,
        *,
        property_id: uuid.UUID | None,
        competitor_id: uuid.UUID | None,
    ) -> "EntityRef":
        """
        Build a reference from the nullable owner columns.

        Raises ValueError unless exactly one of the ids is set.
        """

        if (property_id is None) == (competitor_id is None):
            raise ValueError("Exactly one of property_id or competitor_id must be set.")
        if property_id is not None:
            return cls.for_property(property_id)
        return cls.for_competitor(competitor_id)  # type: ignore[arg-type]

    @property
    def property_id(self) -> uuid.UUID | None:
        return self.entity_id if self.entity_type == EntityType.PROPERTY else None

    @property
    def competitor_id(self) -> uuid.UUID | None:
        return self.entity_id if self.entity_type == EntityType.COMPETITOR else None

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"


@dataclass(frozen=True)
class ParsedRate:
    """
    One normalized entry produced by the CSV parser.
    """

    check_in_date: date
    adults: int
    room_type: str
    price_amount: Decimal
    check_out_date: date | None = None
    currency: str | None = None


@dataclass(frozen=True)
class RowValidationError:
    """
    One dropped CSV row and why.
    """

    row_number: int
    message: str
    column: str | None = None
    value: str | None = None


@dataclass(frozen=True)
class RateCSVParseResult:
    entries: list[ParsedRate]
    errors: list[RowValidationError] = field(default_factory=list)


@dataclass(frozen=True)
class RateRecordInput:
    """
    Typed rate row prepared for persistence.
    """

    entity: EntityRef
    check_in_date: date
    check_out_date: date
    price_amount: Decimal
    currency: str = DEFAULT_CURRENCY
    room_type: str | None = None
    adults: int = DEFAULT_ADULTS
    scraped_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.price_amount <= 0:
            raise ValueError("price_amount must be positive.")
        if self.check_out_date <= self.check_in_date:
            raise ValueError("check_out_date must be after check_in_date.")
        if self.adults <= 0:
            raise ValueError("adults must be positive.")


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of replacing one entity's rates from one CSV file.
    """

    entity: EntityRef
    upload_id: uuid.UUID
    file_path: str
    rows_deleted: int
    rows_inserted: int
    rows_skipped: int
    validation_errors: list[RowValidationError] = field(default_factory=list)


class BatchStatus:
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    NO_DATA = "no_data"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityRefreshOutcome:
    entity: EntityRef
    name: str
    rows_processed: int = 0
    error: str | None = None
    has_file: bool = True


@dataclass(frozen=True)
class BatchRefreshSummary:
    """
    Aggregate of a property + competitors refresh.
    """

    total_processed: int
    files_processed: int
    errors: list[str]
    status: str
    outcomes: list[EntityRefreshOutcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[EntityRefreshOutcome]) -> "BatchRefreshSummary":
        succeeded = [outcome for outcome in outcomes if outcome.error is None]
        errors = [outcome.error for outcome in outcomes if outcome.error is not None]
        attempted = [outcome for outcome in outcomes if outcome.has_file]

        if not attempted:
            status = BatchStatus.NO_DATA
        elif not errors:
            status = BatchStatus.SUCCESS
        elif succeeded:
            status = BatchStatus.PARTIAL_SUCCESS
        else:
            status = BatchStatus.FAILED

        return cls(
            total_processed=sum(outcome.rows_processed for outcome in succeeded),
            files_processed=len(succeeded),
            errors=errors,
            status=status,
            outcomes=list(outcomes),
        )


@dataclass(frozen=True)
class WebhookIngestionSummary:
    inserted: int
    skipped: int
