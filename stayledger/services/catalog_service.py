"""Property catalog access.

The catalog is owned by the listing side of the marketplace; the booking
core reads rate cards through this interface and never writes them.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.core.exceptions import NotFoundError
from stayledger.models.property import Property


class PropertyCatalog(ABC):
    """Read-only view of bookable properties."""

    @abstractmethod
    async def get_property(self, db: AsyncSession, property_id: UUID) -> Property:
        """Get property by ID or raise NotFoundError."""


class SqlPropertyCatalog(PropertyCatalog):
    """Catalog backed by the ``properties`` table."""

    async def get_property(self, db: AsyncSession, property_id: UUID) -> Property:
        result = await db.execute(select(Property).where(Property.id == property_id))
        prop = result.scalar_one_or_none()
        if not prop:
            raise NotFoundError("Property", str(property_id))
        return prop


catalog_service: PropertyCatalog = SqlPropertyCatalog()
