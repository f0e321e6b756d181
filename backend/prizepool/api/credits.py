"""Credit balance and history endpoints."""

from fastapi import APIRouter, Query

from prizepool.api.deps import CurrentUserId, DbSession
from prizepool.models.wallet import CreditTransactionType
from prizepool.schemas.tournament import CreditBalanceResponse, CreditTransactionResponse
from prizepool.services.ledger import SqlCreditLedger

router = APIRouter(prefix="/api/v1/credits", tags=["Credits"])


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_balance(user_id: CurrentUserId, db: DbSession):
    balance = await SqlCreditLedger(db).get_balance(user_id)
    return CreditBalanceResponse(balance=balance)


@router.get("/transactions", response_model=list[CreditTransactionResponse])
async def get_transactions(
    user_id: CurrentUserId,
    db: DbSession,
    tx_type: CreditTransactionType | None = Query(default=None, alias="txType"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Credit history, newest first."""
    return await SqlCreditLedger(db).get_transactions(
        user_id, limit=limit, offset=offset, tx_type=tx_type
    )
