"""Payout adapters (outbound money).

The distributor calls `transfer` once per winner and records the outcome.
Adapters report rail failures as an unsuccessful TransferResult; they do not
retry, a failed payout is re-driven explicitly through the retry operation.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

import httpx

from prizepool.config import Settings, get_settings
from prizepool.logging_config import get_logger
from prizepool.models.payout_key import PayoutKeyType
from prizepool.utils.http_client import AsyncHttpClient

logger = get_logger(__name__)


@dataclass
class TransferResult:
    success: bool
    transfer_id: str | None = None
    error: str | None = None


class PayoutAdapter(Protocol):
    async def transfer(
        self,
        amount: Decimal,
        destination: str,
        description: str,
        *,
        destination_type: PayoutKeyType | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        ...


class SimulatedPayoutAdapter:
    """Always-succeeding rail for development and staging."""

    async def transfer(
        self,
        amount: Decimal,
        destination: str,
        description: str,
        *,
        destination_type: PayoutKeyType | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        transfer_id = f"PIX-{int(time.time() * 1000)}-{uuid4().hex[:8]}"
        logger.info(
            "payout_simulated",
            amount=str(amount),
            destination_type=destination_type.value if destination_type else None,
            transfer_id=transfer_id,
        )
        return TransferResult(success=True, transfer_id=transfer_id)


class MercadoPagoPayoutAdapter:
    """PIX disbursement through the gateway's payout API. Single attempt."""

    PAYOUTS_PATH = "/v1/payouts"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    async def transfer(
        self,
        amount: Decimal,
        destination: str,
        description: str,
        *,
        destination_type: PayoutKeyType | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        body = {
            "amount": float(amount),
            "currency_id": self.settings.currency,
            "description": description,
            "receiver": {
                "pix_key": destination,
                "pix_key_type": destination_type.value if destination_type else None,
            },
        }
        headers = {"X-Idempotency-Key": idempotency_key or str(uuid4())}

        try:
            async with AsyncHttpClient(
                base_url=self.settings.payout_base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.gateway_access_token}",
                },
                timeout=self.settings.payout_timeout_seconds,
                transport=self._transport,
            ) as http:
                data = await http.post_json(
                    self.PAYOUTS_PATH, body, retry=False, headers=headers
                )
        except httpx.TimeoutException:
            logger.warning("payout_timeout", amount=str(amount))
            return TransferResult(success=False, error="Payout rail timed out")
        except httpx.HTTPStatusError as e:
            logger.warning(
                "payout_rejected",
                amount=str(amount),
                status_code=e.response.status_code,
            )
            return TransferResult(
                success=False,
                error=f"Payout rejected ({e.response.status_code})",
            )
        except httpx.HTTPError as e:
            logger.warning("payout_transport_error", error=str(e))
            return TransferResult(success=False, error=f"Payout rail error: {e}")

        status = data.get("status")
        if status in ("rejected", "cancelled", "failed"):
            return TransferResult(
                success=False,
                transfer_id=str(data.get("id")) if data.get("id") else None,
                error=data.get("status_detail") or f"Payout {status}",
            )

        transfer_id = data.get("id")
        if not transfer_id:
            return TransferResult(success=False, error="Payout rail returned no id")
        return TransferResult(success=True, transfer_id=str(transfer_id))


def get_payout_adapter(settings: Settings | None = None) -> PayoutAdapter:
    settings = settings or get_settings()
    if settings.payout_mode == "live":
        return MercadoPagoPayoutAdapter(settings)
    return SimulatedPayoutAdapter()
