"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from stayledger.api.v1 import bookings, disputes, payments, quotes, refunds, webhooks

api_router = APIRouter()

# Quotes
api_router.include_router(quotes.router, prefix="/quotes", tags=["Quotes"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Refunds
api_router.include_router(refunds.router, prefix="/refunds", tags=["Refunds"])

# Disputes
api_router.include_router(disputes.router, prefix="/disputes", tags=["Disputes"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
