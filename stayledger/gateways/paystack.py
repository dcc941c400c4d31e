"""Paystack payment gateway adapter.

Documentation: https://paystack.com/docs/api/transaction/
Amounts are exchanged in the currency's subunit (kobo for NGN), which is
already how bookings store money.
"""

import hashlib
import hmac
import json
import logging

import httpx

from stayledger.config import settings
from stayledger.core.exceptions import GatewayRejected, GatewayUnavailable
from stayledger.gateways.base import (
    GatewayType,
    InitializedTransaction,
    PaymentProcessor,
    TransactionStatus,
    TransactionVerification,
)

logger = logging.getLogger(__name__)

# Paystack transaction statuses that are final failures
FAILED_STATUSES = {"failed", "abandoned", "reversed"}


class PaystackGateway(PaymentProcessor):
    """Paystack payment gateway implementation."""

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = secret_key or settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = timeout or settings.gateway_timeout_seconds
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.PAYSTACK

    def _client(self) -> httpx.AsyncClient:
        if not self.secret_key:
            raise GatewayRejected("paystack", "Paystack credentials not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Paystack {method} {path} timed out: {e}")
            raise GatewayUnavailable("paystack", "request timed out") from e
        except httpx.TransportError as e:
            logger.warning(f"Paystack {method} {path} transport error: {e}")
            raise GatewayUnavailable("paystack", str(e)) from e

        if response.status_code >= 500 or response.status_code == 429:
            logger.warning(f"Paystack {method} {path} returned {response.status_code}")
            raise GatewayUnavailable("paystack", f"HTTP {response.status_code}")
        return response

    async def initialize_transaction(
        self,
        amount: int,
        currency: str,
        reference: str,
        metadata: dict | None = None,
    ) -> InitializedTransaction:
        """Initialize a Paystack transaction under our reference.

        Paystack requires a customer email; it is read from ``metadata["email"]``.
        """
        metadata = dict(metadata or {})
        payload = {
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "email": metadata.pop("email", None),
            "metadata": metadata,
        }
        if settings.paystack_callback_url:
            payload["callback_url"] = settings.paystack_callback_url

        response = await self._request("POST", "/transaction/initialize", json=payload)
        body = _json(response)

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            # Paystack rejects reused references; the earlier initialization stands.
            if "duplicate" in message.lower() and "reference" in message.lower():
                logger.info(f"Paystack reference {reference} already initialized")
                return InitializedTransaction(reference=reference, raw_response=body)
            raise GatewayRejected("paystack", message)

        data = body.get("data") or {}
        return InitializedTransaction(
            reference=data.get("reference", reference),
            authorization_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
            raw_response=body,
        )

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        response = await self._request("GET", f"/transaction/verify/{reference}")
        body = _json(response)

        if response.status_code == 404 or (response.status_code == 400 and not body.get("status")):
            # Unknown to Paystack so far; nothing to act on yet.
            return TransactionVerification(
                reference=reference,
                status=TransactionStatus.PENDING,
                raw_response=body,
            )
        if response.status_code >= 400:
            raise GatewayRejected("paystack", body.get("message") or f"HTTP {response.status_code}")

        data = body.get("data") or {}
        gateway_status = str(data.get("status", "")).lower()
        if gateway_status == "success":
            status = TransactionStatus.SUCCESS
        elif gateway_status in FAILED_STATUSES:
            status = TransactionStatus.FAILED
        else:
            status = TransactionStatus.PENDING

        return TransactionVerification(
            reference=data.get("reference", reference),
            status=status,
            amount=data.get("amount"),
            currency=data.get("currency"),
            gateway_transaction_id=str(data["id"]) if data.get("id") is not None else None,
            failure_reason=data.get("gateway_response") if status == TransactionStatus.FAILED else None,
            raw_response=body,
        )

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict | None:
        """Check the ``x-paystack-signature`` HMAC-SHA512 of the raw body."""
        if not signature or not self.secret_key:
            return None
        expected = hmac.new(self.secret_key.encode(), payload, hashlib.sha512).hexdigest()
        if not hmac.compare_digest(expected, signature):
            return None
        try:
            return json.loads(payload)
        except ValueError:
            return None


def _json(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
