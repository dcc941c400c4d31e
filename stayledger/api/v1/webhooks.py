"""Webhook endpoints for payment gateways."""

from fastapi import APIRouter, Header, Request, status

from stayledger.api.deps import DbSession
from stayledger.gateways.base import GatewayType
from stayledger.services.payment_service import payment_service

router = APIRouter()


@router.post("/paystack", status_code=status.HTTP_200_OK)
async def paystack_webhook(
    request: Request,
    db: DbSession,
    x_paystack_signature: str | None = Header(None, alias="x-paystack-signature"),
) -> dict:
    """Handle Paystack events.

    The signed body only names the reference; the payment is re-verified
    through the gateway API before anything changes.
    """
    payload = await request.body()
    result = await payment_service.handle_webhook(
        db, GatewayType.PAYSTACK, payload, x_paystack_signature
    )
    if result is None:
        return {"status": "ignored"}
    return {
        "status": "processed",
        "reference": result.reference,
        "payment_status": result.payment_status.value,
        "booking_status": result.booking_status.value,
    }
