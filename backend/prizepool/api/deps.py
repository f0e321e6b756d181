"""API dependencies.

Authentication happens upstream: the gateway in front of this service
verifies the session and forwards the user id in X-User-Id.

Collaborators that talk to the outside world are resolved through the
factories below so tests can swap them with app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config import get_settings
from prizepool.services.ledger import CreditLedger, SqlCreditLedger
from prizepool.services.notifications import CeleryJoinNotifier, JoinNotifier
from prizepool.services.payment_gateway import MercadoPagoGateway, PaymentGateway
from prizepool.services.payout_transfer import PayoutAdapter
from prizepool.services.payout_transfer import get_payout_adapter as _build_payout_adapter
from prizepool.tournament.event_bus import TournamentEventBus
from prizepool.tournament.event_bus import get_event_bus as _global_event_bus
from prizepool.utils.db import get_db


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Authenticated user id (required)."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "UNAUTHORIZED",
                    "message": "Authentication required",
                    "details": {},
                }
            },
        )
    return x_user_id.strip()


def get_payment_gateway() -> PaymentGateway:
    return MercadoPagoGateway(get_settings())


def get_payout_adapter() -> PayoutAdapter:
    return _build_payout_adapter(get_settings())


def get_join_notifier() -> JoinNotifier:
    return CeleryJoinNotifier()


def get_event_bus() -> TournamentEventBus:
    return _global_event_bus()


def get_credit_ledger(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CreditLedger:
    return SqlCreditLedger(db)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
EventBus = Annotated[TournamentEventBus, Depends(get_event_bus)]
