"""Property catalog model (rate card)."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from stayledger.database import Base
from stayledger.domain.pricing import RateCard


class Property(Base):
    """Bookable property and its rate card.

    Owned by the listing side of the marketplace; the booking core only reads it.
    """

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    realtor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(150), nullable=False)

    # Rate card (smallest currency unit)
    nightly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0)
    security_deposit: Mapped[int] = mapped_column(Integer, default=0)
    tax_rate_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    # Per-property overrides of the platform service fee; NULL uses settings
    service_fee_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    platform_fee_share_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))

    max_occupancy: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def rate_card(self) -> RateCard:
        return RateCard(
            nightly_rate=self.nightly_rate,
            currency=self.currency,
            cleaning_fee=self.cleaning_fee or 0,
            security_deposit=self.security_deposit or 0,
            tax_rate_percent=Decimal(self.tax_rate_percent or 0),
            max_occupancy=self.max_occupancy,
            is_active=bool(self.is_active),
            is_approved=bool(self.is_approved),
            service_fee_percent=(
                Decimal(self.service_fee_percent)
                if self.service_fee_percent is not None
                else None
            ),
            platform_fee_share_percent=(
                Decimal(self.platform_fee_share_percent)
                if self.platform_fee_share_percent is not None
                else None
            ),
        )
