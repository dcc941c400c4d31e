"""Manual payment gateway adapter for bank transfers."""

from sqlalchemy import select

from stayledger.database import get_session_maker
from stayledger.gateways.base import (
    GatewayType,
    InitializedTransaction,
    PaymentProcessor,
    TransactionStatus,
    TransactionVerification,
)
from stayledger.models.payment import PaymentRecord


class ManualGateway(PaymentProcessor):
    """Manual payment gateway for bank transfers.

    Initialization always succeeds. The "processor" is the operator: the
    figures they copy from the bank statement onto the payment record (see
    ``PaymentService.record_transfer``) are what verification reports, so
    every API and worker process sees the same settlement.
    """

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def initialize_transaction(
        self,
        amount: int,
        currency: str,
        reference: str,
        metadata: dict | None = None,
    ) -> InitializedTransaction:
        """Create manual payment request (always succeeds)."""
        return InitializedTransaction(
            reference=reference,
            raw_response={
                "type": "bank_transfer",
                "status": "pending_verification",
                "instructions": f"Transfer {amount} {currency} quoting reference {reference}",
            },
        )

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        """Report the transfer recorded against ``reference``, read in its own session."""
        async with get_session_maker()() as session:
            result = await session.execute(
                select(
                    PaymentRecord.received_amount,
                    PaymentRecord.received_currency,
                    PaymentRecord.transfer_recorded_at,
                    PaymentRecord.transfer_declined_at,
                ).where(PaymentRecord.reference == reference)
            )
            row = result.one_or_none()

        if row is None or (row.transfer_recorded_at is None and row.transfer_declined_at is None):
            return TransactionVerification(reference=reference, status=TransactionStatus.PENDING)

        if row.transfer_declined_at is not None:
            return TransactionVerification(
                reference=reference,
                status=TransactionStatus.FAILED,
                failure_reason="Transfer declined by operator",
                raw_response={"type": "bank_transfer", "status": "declined"},
            )
        return TransactionVerification(
            reference=reference,
            status=TransactionStatus.SUCCESS,
            amount=row.received_amount,
            currency=row.received_currency,
            gateway_transaction_id=f"manual_{reference}",
            raw_response={"type": "bank_transfer", "status": "received"},
        )
