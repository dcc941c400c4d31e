"""Pricing engine.

Pure calculation from a property rate card and a stay to an itemized,
frozen price breakdown. All money is an integer in the currency's smallest
unit; rates are Decimal percentages. No I/O happens here, so quotes can be
recomputed freely for estimate displays.
"""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from stayledger.core.exceptions import (
    ExceedsMaxOccupancy,
    InvalidDateRange,
    InvalidInput,
    PropertyNotBookable,
)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class RateCard:
    """A property's pricing inputs, owned by the realtor."""

    nightly_rate: int
    currency: str
    cleaning_fee: int = 0
    security_deposit: int = 0
    tax_rate_percent: Decimal = Decimal("0")
    max_occupancy: int = 1
    is_active: bool = True
    is_approved: bool = True
    # None means "use the platform default"
    service_fee_percent: Decimal | None = None
    platform_fee_share_percent: Decimal | None = None


@dataclass(frozen=True)
class FeePolicy:
    """Platform-wide fee defaults applied when a rate card has no override."""

    service_fee_percent: Decimal
    platform_fee_share_percent: Decimal
    platform_commission_percent: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    """Itemized price of a stay, frozen at booking creation."""

    nightly_rate: int
    nights: int
    subtotal: int
    cleaning_fee: int
    service_fee: int
    service_fee_platform: int
    service_fee_processing: int
    security_deposit: int
    taxes: int
    total: int
    currency: str
    service_fee_percent: Decimal
    platform_fee_share_percent: Decimal
    tax_rate_percent: Decimal
    # Realtor-side figures; not part of what the guest pays.
    commission_amount: int = 0
    realtor_payout: int = 0

    def __post_init__(self) -> None:
        expected = (
            self.subtotal
            + self.cleaning_fee
            + self.service_fee
            + self.security_deposit
            + self.taxes
        )
        if self.total != expected:
            raise ValueError(f"Breakdown total {self.total} != sum of components {expected}")
        if self.service_fee_platform + self.service_fee_processing != self.service_fee:
            raise ValueError("Service fee split does not add up to the service fee")

    def to_dict(self) -> dict:
        return asdict(self)


def percent_of(amount: int, percent: Decimal) -> int:
    """``percent`` % of ``amount``, rounded half-up to a whole minor unit."""
    return int((Decimal(amount) * percent / HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def count_nights(check_in: date, check_out: date) -> int:
    """Whole calendar nights in the half-open stay [check_in, check_out)."""
    return (check_out - check_in).days


def validate_stay(
    card: RateCard,
    check_in: date,
    check_out: date,
    guest_count: int,
    today: date,
) -> None:
    """Raise the matching error for an unbookable stay request."""
    if not card.is_active or not card.is_approved:
        raise PropertyNotBookable()
    if check_out <= check_in:
        raise InvalidDateRange("check_out must be after check_in")
    if check_in < today:
        raise InvalidDateRange("check_in cannot be in the past")
    if guest_count < 1:
        raise InvalidInput("guest_count must be at least 1")
    if guest_count > card.max_occupancy:
        raise ExceedsMaxOccupancy(card.max_occupancy)


def quote(
    card: RateCard,
    check_in: date,
    check_out: date,
    guest_count: int,
    policy: FeePolicy,
    today: date,
) -> PriceBreakdown:
    """Compute the authoritative price breakdown for a stay.

    Args:
        card: Property rate card
        check_in: First night (inclusive)
        check_out: Departure day (exclusive)
        guest_count: Number of guests
        policy: Platform fee defaults
        today: Reference date for the "not in the past" rule

    Returns:
        PriceBreakdown: Itemized, self-consistent breakdown

    Raises:
        InvalidDateRange, InvalidInput, ExceedsMaxOccupancy, PropertyNotBookable
    """
    validate_stay(card, check_in, check_out, guest_count, today)

    service_fee_percent = (
        card.service_fee_percent
        if card.service_fee_percent is not None
        else policy.service_fee_percent
    )
    platform_share_percent = (
        card.platform_fee_share_percent
        if card.platform_fee_share_percent is not None
        else policy.platform_fee_share_percent
    )

    nights = count_nights(check_in, check_out)
    subtotal = card.nightly_rate * nights

    service_fee = percent_of(subtotal, service_fee_percent)
    service_fee_platform = percent_of(service_fee, platform_share_percent)
    service_fee_processing = service_fee - service_fee_platform

    taxes = percent_of(subtotal + card.cleaning_fee, card.tax_rate_percent)

    total = subtotal + card.cleaning_fee + service_fee + card.security_deposit + taxes

    commission_amount = percent_of(subtotal, policy.platform_commission_percent)
    realtor_payout = subtotal - commission_amount + card.cleaning_fee

    return PriceBreakdown(
        nightly_rate=card.nightly_rate,
        nights=nights,
        subtotal=subtotal,
        cleaning_fee=card.cleaning_fee,
        service_fee=service_fee,
        service_fee_platform=service_fee_platform,
        service_fee_processing=service_fee_processing,
        security_deposit=card.security_deposit,
        taxes=taxes,
        total=total,
        currency=card.currency,
        service_fee_percent=service_fee_percent,
        platform_fee_share_percent=platform_share_percent,
        tax_rate_percent=card.tax_rate_percent,
        commission_amount=commission_amount,
        realtor_payout=realtor_payout,
    )
