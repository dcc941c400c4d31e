"""Base payment processor interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
Adapters raise GatewayUnavailable for transient failures (timeouts,
connection errors, 5xx) and GatewayRejected when the gateway refuses a
request outright.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    PAYSTACK = "paystack"
    MANUAL = "manual"


class TransactionStatus(str, Enum):
    """Gateway-side outcome of a transaction."""

    SUCCESS = "success"
    FAILED = "failed"
    # Not settled yet, or unknown to the gateway so far
    PENDING = "pending"


@dataclass
class InitializedTransaction:
    """Result of initializing a transaction."""

    reference: str
    authorization_url: str | None = None
    access_code: str | None = None
    raw_response: dict | None = None


@dataclass
class TransactionVerification:
    """Result of verifying a transaction."""

    reference: str
    status: TransactionStatus
    amount: int | None = None
    currency: str | None = None
    gateway_transaction_id: str | None = None
    failure_reason: str | None = None
    raw_response: dict = field(default_factory=dict)


class PaymentProcessor(ABC):
    """Abstract base class for payment processors."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""

    @abstractmethod
    async def initialize_transaction(
        self,
        amount: int,
        currency: str,
        reference: str,
        metadata: dict | None = None,
    ) -> InitializedTransaction:
        """Create a transaction on the gateway under our reference.

        Args:
            amount: Amount in smallest currency unit
            currency: ISO currency code
            reference: Internal payment reference, reused on retry
            metadata: Additional metadata (booking id, customer email)

        Returns:
            InitializedTransaction with checkout details
        """

    @abstractmethod
    async def verify_transaction(self, reference: str) -> TransactionVerification:
        """Ask the gateway for the authoritative state of a transaction.

        Args:
            reference: Internal payment reference

        Returns:
            TransactionVerification with the gateway-reported amount and currency
        """

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict | None:
        """Verify webhook signature and parse payload.

        Returns:
            Parsed event dict if valid, None if invalid
        """
        return None
