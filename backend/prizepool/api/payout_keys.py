"""Payout key endpoints (where a player receives prizes)."""

from fastapi import APIRouter

from prizepool.api.deps import CurrentUserId, DbSession
from prizepool.schemas.tournament import PayoutKeyRequest, PayoutKeyResponse
from prizepool.services.payout_keys import PayoutKeyService
from prizepool.utils.errors import ErrorCode, NotFoundError

router = APIRouter(prefix="/api/v1/payout-key", tags=["Payout Keys"])


@router.get("", response_model=PayoutKeyResponse)
async def get_payout_key(user_id: CurrentUserId, db: DbSession):
    key = await PayoutKeyService(db).get(user_id)
    if key is None:
        raise NotFoundError(
            "No payout key registered",
            code=ErrorCode.PAYOUT_KEY_MISSING,
        )
    return key


@router.put("", response_model=PayoutKeyResponse)
async def set_payout_key(body: PayoutKeyRequest, user_id: CurrentUserId, db: DbSession):
    """Register or replace the caller's payout key."""
    return await PayoutKeyService(db).set(user_id, body.key, body.key_type)
