"""
app/repositories/entity_repository.py

Lookups for properties and competitors, including transitive ownership
(competitor → property → user).
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.rates import EntityRef, EntityType
from db.models.competitor import Competitor
from db.models.property import Property


class EntityRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_property(self, property_id: uuid.UUID) -> Property | None:
        return self._session.get(Property, property_id)

    def get_competitor(self, competitor_id: uuid.UUID) -> Competitor | None:
        return self._session.get(Competitor, competitor_id)

    def list_competitors(self, property_id: uuid.UUID) -> list[Competitor]:
        stmt = (
            select(Competitor)
            .where(Competitor.property_id == property_id)
            .order_by(Competitor.name)
        )
        return list(self._session.scalars(stmt).all())

    def resolve_owner_user_id(self, entity: EntityRef) -> uuid.UUID | None:
        """
        Return the owning user id, or None when the entity chain is broken.
        """

        if entity.entity_type == EntityType.PROPERTY:
            found_property = self.get_property(entity.entity_id)
            return found_property.user_id if found_property is not None else None

        competitor = self.get_competitor(entity.entity_id)
        if competitor is None:
            return None
        parent = self.get_property(competitor.property_id)
        return parent.user_id if parent is not None else None
