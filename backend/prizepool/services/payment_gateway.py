"""Payment gateway adapter (inbound money).

Creates instant-payment charge intents for organizer deposits and looks up
payment status when the gateway notifies us. The escrow service depends only
on the PaymentGateway protocol; MercadoPagoGateway is the production adapter.
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

import httpx

from prizepool.config import Settings, get_settings
from prizepool.logging_config import get_logger
from prizepool.utils.errors import ErrorCode, ExternalGatewayError
from prizepool.utils.http_client import AsyncHttpClient

logger = get_logger(__name__)


@dataclass
class ChargeIntent:
    """Pending charge created on the gateway."""

    reference: str
    displayable_code: str | None
    raw_image: str | None
    status: str = "pending"


@dataclass
class GatewayPayment:
    """Payment as reported by the gateway."""

    reference: str
    status: str
    metadata: dict[str, Any] = field(default_factory=dict)
    # transaction_amount; None when the gateway omits it
    amount: Decimal | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"

    @property
    def is_failed(self) -> bool:
        return self.status in ("rejected", "cancelled")


class PaymentGateway(Protocol):
    async def create_charge_intent(
        self,
        amount: Decimal,
        payer_identity: str,
        *,
        description: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeIntent:
        ...

    async def get_payment(self, reference: str) -> GatewayPayment:
        ...


class MercadoPagoGateway:
    """PIX charges through the Mercado Pago payments API."""

    PAYMENTS_PATH = "/v1/payments"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 3,
        min_wait: float = 1,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._max_retries = max_retries
        self._min_wait = min_wait

    def _client(self) -> AsyncHttpClient:
        return AsyncHttpClient(
            base_url=self.settings.gateway_base_url,
            headers={
                "Authorization": f"Bearer {self.settings.gateway_access_token}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.gateway_timeout_seconds,
            max_retries=self._max_retries,
            min_wait=self._min_wait,
            transport=self._transport,
        )

    async def create_charge_intent(
        self,
        amount: Decimal,
        payer_identity: str,
        *,
        description: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeIntent:
        """Create a PIX payment.

        The idempotency key makes the POST safe to retry on timeouts.

        Raises:
            ExternalGatewayError: timeout, transport error, non-2xx or a
                response without a payment id
        """
        body = {
            "transaction_amount": float(amount),
            "description": description,
            "payment_method_id": "pix",
            "payer": {"email": payer_identity},
            "metadata": metadata or {},
        }

        try:
            async with self._client() as http:
                data = await http.post_json(
                    self.PAYMENTS_PATH,
                    body,
                    headers={"X-Idempotency-Key": idempotency_key},
                )
        except httpx.TimeoutException as e:
            logger.error("gateway_timeout", idempotency_key=idempotency_key)
            raise ExternalGatewayError(
                "Payment gateway timed out",
                code=ErrorCode.GATEWAY_TIMEOUT,
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "gateway_http_error",
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise ExternalGatewayError(
                "Payment gateway rejected the charge",
                details={"statusCode": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error("gateway_transport_error", error=str(e))
            raise ExternalGatewayError("Payment gateway unavailable") from e

        reference = data.get("id")
        if not reference:
            raise ExternalGatewayError("Payment gateway returned no payment id")

        transaction_data = (data.get("point_of_interaction") or {}).get(
            "transaction_data"
        ) or {}
        intent = ChargeIntent(
            reference=str(reference),
            displayable_code=transaction_data.get("qr_code"),
            raw_image=transaction_data.get("qr_code_base64"),
            status=data.get("status", "pending"),
        )
        logger.info(
            "gateway_charge_created",
            reference=intent.reference,
            amount=str(amount),
        )
        return intent

    async def get_payment(self, reference: str) -> GatewayPayment:
        try:
            async with self._client() as http:
                data = await http.get_json(f"{self.PAYMENTS_PATH}/{reference}")
        except httpx.TimeoutException as e:
            raise ExternalGatewayError(
                "Payment gateway timed out",
                code=ErrorCode.GATEWAY_TIMEOUT,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalGatewayError(
                "Payment lookup failed", details={"reference": reference}
            ) from e

        amount = data.get("transaction_amount")
        return GatewayPayment(
            reference=str(data.get("id", reference)),
            status=data.get("status", "unknown"),
            metadata=data.get("metadata") or {},
            amount=Decimal(str(amount)) if amount is not None else None,
        )


def parse_signature_header(header: str) -> tuple[str | None, str | None]:
    """Split `ts=...,v1=...` into (ts, v1)."""
    ts = v1 = None
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "ts":
            ts = value
        elif key == "v1":
            v1 = value
    return ts, v1


def build_signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def verify_webhook_signature(
    secret: str,
    signature_header: str | None,
    request_id: str | None,
    data_id: str,
) -> bool:
    """Verify the gateway's HMAC-SHA256 webhook signature."""
    if not signature_header or not request_id:
        return False

    ts, v1 = parse_signature_header(signature_header)
    if not ts or not v1:
        return False

    manifest = build_signature_manifest(data_id, request_id, ts)
    expected = hmac.new(
        secret.encode(), manifest.encode(), hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, v1)
