"""Test fixtures for API tests.

The real application is used with its collaborators overridden: each request
gets its own session from the test database, the payment gateway is an
in-memory fake and payouts go through the simulated rail.
"""

from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from prizepool.api.deps import (
    get_event_bus,
    get_join_notifier,
    get_payment_gateway,
    get_payout_adapter,
)
from prizepool.services.payment_gateway import ChargeIntent, GatewayPayment
from prizepool.services.payout_transfer import SimulatedPayoutAdapter
from prizepool.utils.db import get_db


class FakeGateway:
    """In-memory payment gateway. Payments are approved unless told otherwise."""

    def __init__(self) -> None:
        self.statuses: dict[str, str] = {}
        self.amounts: dict[str, Decimal] = {}
        self.charges: list[dict[str, Any]] = []
        self._next_id = 1000

    async def create_charge_intent(
        self,
        amount: Decimal,
        payer_identity: str,
        *,
        description: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeIntent:
        self._next_id += 1
        reference = str(self._next_id)
        self.statuses[reference] = "pending"
        self.amounts[reference] = amount
        self.charges.append(
            {"reference": reference, "amount": amount, "payer": payer_identity}
        )
        return ChargeIntent(
            reference=reference,
            displayable_code=f"pix-code-{reference}",
            raw_image=None,
        )

    async def get_payment(self, reference: str) -> GatewayPayment:
        return GatewayPayment(
            reference=reference,
            status=self.statuses.get(reference, "approved"),
            amount=self.amounts.get(reference),
        )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def test_app(session_factory, event_bus, notifier, gateway):
    """The application with database and external services overridden."""
    from prizepool.main import app

    async def override_get_db():
        async with session_factory() as db:
            try:
                yield db
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    app.dependency_overrides[get_join_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_payout_adapter] = SimulatedPayoutAdapter

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
