"""Quote service: rate card lookup + pure pricing engine."""

from datetime import date
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.config import settings
from stayledger.domain.pricing import FeePolicy, PriceBreakdown, quote
from stayledger.models.property import Property
from stayledger.services.catalog_service import catalog_service
from stayledger.utils.dates import today_utc


def current_fee_policy() -> FeePolicy:
    """Platform fee defaults from settings."""
    return FeePolicy(
        service_fee_percent=settings.service_fee_percent,
        platform_fee_share_percent=settings.platform_fee_share_percent,
        platform_commission_percent=settings.platform_commission_percent,
    )


class PricingService:
    """Computes authoritative quotes. Never writes."""

    def quote_for_property(
        self,
        prop: Property,
        check_in: date,
        check_out: date,
        guest_count: int,
        today: date | None = None,
    ) -> PriceBreakdown:
        return quote(
            prop.rate_card(),
            check_in,
            check_out,
            guest_count,
            current_fee_policy(),
            today or today_utc(),
        )

    async def quote(
        self,
        db: AsyncSession,
        property_id: UUID,
        check_in: date,
        check_out: date,
        guest_count: int,
        today: date | None = None,
    ) -> PriceBreakdown:
        """Quote a stay.

        Args:
            db: Database session
            property_id: Property to stay at
            check_in: First night
            check_out: Departure day (exclusive)
            guest_count: Number of guests
            today: Override for the current date

        Returns:
            PriceBreakdown: Itemized breakdown

        Raises:
            NotFoundError, InvalidDateRange, ExceedsMaxOccupancy, PropertyNotBookable
        """
        prop = await catalog_service.get_property(db, property_id)
        return self.quote_for_property(prop, check_in, check_out, guest_count, today)


pricing_service = PricingService()
