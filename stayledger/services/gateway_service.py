"""Payment gateway service.

Routes payment operations to the appropriate processor adapter.
No business logic here - only gateway coordination.
"""

from stayledger.config import settings
from stayledger.gateways.base import (
    GatewayType,
    InitializedTransaction,
    PaymentProcessor,
    TransactionVerification,
)
from stayledger.gateways.manual import ManualGateway
from stayledger.gateways.paystack import PaystackGateway


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self):
        self._gateways: dict[GatewayType, PaymentProcessor] = {}

    @property
    def default_gateway(self) -> GatewayType:
        return GatewayType(settings.payment_gateway)

    def get_gateway(self, gateway_type: str | GatewayType | None = None) -> PaymentProcessor:
        """Get or create the processor for ``gateway_type`` (default from settings)."""
        gateway_type = GatewayType(gateway_type) if gateway_type else self.default_gateway

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.PAYSTACK:
                self._gateways[gateway_type] = PaystackGateway()
            else:
                self._gateways[gateway_type] = ManualGateway()

        return self._gateways[gateway_type]

    def register(self, processor: PaymentProcessor) -> None:
        """Install a processor instance, replacing any cached one of its type."""
        self._gateways[processor.gateway_type] = processor

    def reset(self) -> None:
        self._gateways.clear()

    async def initialize_transaction(
        self,
        gateway_type: str | GatewayType,
        amount: int,
        currency: str,
        reference: str,
        metadata: dict | None = None,
    ) -> InitializedTransaction:
        """Initialize a transaction via the specified gateway."""
        gateway = self.get_gateway(gateway_type)
        return await gateway.initialize_transaction(
            amount=amount,
            currency=currency,
            reference=reference,
            metadata=metadata,
        )

    async def verify_transaction(
        self,
        gateway_type: str | GatewayType,
        reference: str,
    ) -> TransactionVerification:
        """Verify transaction status via gateway."""
        gateway = self.get_gateway(gateway_type)
        return await gateway.verify_transaction(reference)

    def verify_webhook(
        self,
        gateway_type: str | GatewayType,
        payload: bytes,
        signature: str | None,
    ) -> dict | None:
        """Verify webhook from gateway."""
        gateway = self.get_gateway(gateway_type)
        return gateway.verify_webhook(payload, signature)


# Singleton instance
gateway_service = GatewayService()
