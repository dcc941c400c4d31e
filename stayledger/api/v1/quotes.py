"""Quote endpoints."""

from fastapi import APIRouter

from stayledger.api.deps import DbSession
from stayledger.domain.pricing import PriceBreakdown
from stayledger.schemas.booking import PriceBreakdownResponse, QuoteRequest
from stayledger.services.pricing_service import pricing_service

router = APIRouter()


@router.post("", response_model=PriceBreakdownResponse)
async def create_quote(quote_data: QuoteRequest, db: DbSession) -> PriceBreakdown:
    """Price a prospective stay. Has no side effects."""
    return await pricing_service.quote(
        db,
        quote_data.property_id,
        quote_data.check_in,
        quote_data.check_out,
        quote_data.guest_count,
    )
