"""Availability ledger: committed date ranges per property."""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.core.exceptions import AvailabilityConflict
from stayledger.core.locks import PROPERTY_LOCK, hold_for_transaction
from stayledger.domain.availability import DateRange
from stayledger.models.booking import AvailabilityReservation
from stayledger.utils.dates import utcnow

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Reserves and releases half-open date ranges on properties."""

    async def find_conflicts(
        self,
        db: AsyncSession,
        property_id: UUID,
        check_in: date,
        check_out: date,
    ) -> list[AvailabilityReservation]:
        """Active reservations overlapping [check_in, check_out)."""
        result = await db.execute(
            select(AvailabilityReservation).where(
                AvailabilityReservation.property_id == property_id,
                AvailabilityReservation.active.is_(True),
                AvailabilityReservation.check_in < check_out,
                AvailabilityReservation.check_out > check_in,
            )
        )
        return list(result.scalars().all())

    async def reserve(
        self,
        db: AsyncSession,
        property_id: UUID,
        check_in: date,
        check_out: date,
        booking_id: UUID,
    ) -> AvailabilityReservation:
        """Commit a date range to a booking.

        Serialized per property until the surrounding transaction ends, so
        two overlapping requests cannot both pass the conflict check.

        Raises:
            InvalidDateRange: If the range is empty
            AvailabilityConflict: If an active reservation overlaps
        """
        DateRange(check_in, check_out)
        await hold_for_transaction(db, PROPERTY_LOCK, property_id)

        conflicts = await self.find_conflicts(db, property_id, check_in, check_out)
        if conflicts:
            logger.info(
                f"Reservation conflict on property {property_id} for "
                f"{check_in}..{check_out} (booking {conflicts[0].booking_id})"
            )
            raise AvailabilityConflict()

        reservation = AvailabilityReservation(
            property_id=property_id,
            booking_id=booking_id,
            check_in=check_in,
            check_out=check_out,
            active=True,
        )
        db.add(reservation)
        try:
            await db.flush()
        except IntegrityError as e:
            # Exclusion constraint tripped by another process
            raise AvailabilityConflict() from e
        return reservation

    async def release(self, db: AsyncSession, booking_id: UUID) -> bool:
        """Deactivate a booking's reservation. Idempotent.

        Returns:
            bool: True if an active reservation was released
        """
        result = await db.execute(
            update(AvailabilityReservation)
            .where(
                AvailabilityReservation.booking_id == booking_id,
                AvailabilityReservation.active.is_(True),
            )
            .values(active=False, released_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount > 0
        if released:
            logger.info(f"Released reservation for booking {booking_id}")
        return released

    async def get_reservation(
        self, db: AsyncSession, booking_id: UUID
    ) -> AvailabilityReservation | None:
        result = await db.execute(
            select(AvailabilityReservation)
            .where(AvailabilityReservation.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


availability_service = AvailabilityService()
