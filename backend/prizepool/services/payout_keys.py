"""Payout destination registry (PIX keys)."""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.logging_config import get_logger
from prizepool.models.payout_key import PayoutKey, PayoutKeyType
from prizepool.utils.errors import ValidationError

logger = get_logger(__name__)

_KEY_PATTERNS: dict[PayoutKeyType, re.Pattern[str]] = {
    PayoutKeyType.CPF: re.compile(r"^\d{11}$"),
    PayoutKeyType.PHONE: re.compile(r"^\+?\d{10,14}$"),
    PayoutKeyType.EMAIL: re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
    PayoutKeyType.RANDOM: re.compile(
        r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
    ),
}


def normalize_key(key: str, key_type: PayoutKeyType) -> str:
    """Strip formatting (dots, dashes, spaces) from CPF and phone keys."""
    key = key.strip()
    if key_type == PayoutKeyType.CPF:
        return re.sub(r"[.\-\s]", "", key)
    if key_type == PayoutKeyType.PHONE:
        return re.sub(r"[()\-\s]", "", key)
    if key_type == PayoutKeyType.EMAIL:
        return key.lower()
    return key


class PayoutKeyService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> PayoutKey | None:
        return await self.session.scalar(
            select(PayoutKey).where(PayoutKey.user_id == user_id)
        )

    async def get_many(self, user_ids: list[str]) -> dict[str, PayoutKey]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(PayoutKey).where(PayoutKey.user_id.in_(user_ids))
        )
        return {k.user_id: k for k in result.scalars().all()}

    async def set(self, user_id: str, key: str, key_type: PayoutKeyType) -> PayoutKey:
        """Register or replace the user's payout key."""
        normalized = normalize_key(key, key_type)
        if not _KEY_PATTERNS[key_type].match(normalized):
            raise ValidationError(
                f"Invalid {key_type.value} key",
                details={"keyType": key_type.value},
            )

        payout_key = await self.get(user_id)
        if payout_key is None:
            payout_key = PayoutKey(user_id=user_id, key=normalized, key_type=key_type)
            self.session.add(payout_key)
        else:
            payout_key.key = normalized
            payout_key.key_type = key_type

        await self.session.commit()
        await self.session.refresh(payout_key)
        logger.info("payout_key_set", user_id=user_id, key_type=key_type.value)
        return payout_key
