"""Credit ledger.

Players pay entry fees from an internal credit balance. The registrar only
depends on the CreditLedger contract; SqlCreditLedger is the implementation
backed by the credit_accounts / credit_transactions tables.

Features:
- Atomic spend-if-sufficient (single conditional UPDATE, no read-then-write)
- Idempotent refunds keyed by a reference id
- Transaction log with SHA-256 integrity hashes
"""

import hashlib
from typing import Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.logging_config import get_logger
from prizepool.models.wallet import (
    CreditAccount,
    CreditTransaction,
    CreditTransactionType,
)
from prizepool.utils.errors import ValidationError

logger = get_logger(__name__)


@runtime_checkable
class CreditLedger(Protocol):
    """Atomic credit operations consumed by the registrar."""

    async def spend(
        self,
        player_id: str,
        amount: int,
        reason: str,
        reference_id: str,
        correlation_id: str | None = None,
    ) -> bool:
        """Debit `amount` if and only if the balance covers it."""
        ...

    async def refund(
        self,
        player_id: str,
        amount: int,
        reference_id: str | None = None,
    ) -> None:
        """Credit `amount` back. Repeating a reference is a no-op."""
        ...


class SqlCreditLedger:
    """CreditLedger over the credit tables.

    Works inside the caller's session and only flushes: the caller owns the
    transaction, so a spend and the writes that depend on it commit together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_balance(self, player_id: str) -> int:
        balance = await self.session.scalar(
            select(CreditAccount.balance).where(CreditAccount.user_id == player_id)
        )
        return balance or 0

    async def spend(
        self,
        player_id: str,
        amount: int,
        reason: str,
        reference_id: str,
        correlation_id: str | None = None,
    ) -> bool:
        """Debit credits atomically.

        Returns:
            True if debited, False if the balance was insufficient
            (or the account does not exist).
        """
        if amount <= 0:
            raise ValidationError("Spend amount must be positive", details={"amount": amount})

        result = await self.session.execute(
            update(CreditAccount)
            .where(
                CreditAccount.user_id == player_id,
                CreditAccount.balance >= amount,
            )
            .values(balance=CreditAccount.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "credit_spend_rejected",
                player_id=player_id,
                amount=amount,
                reference_id=reference_id,
                correlation_id=correlation_id,
            )
            return False

        balance_after = await self.get_balance(player_id)
        await self._record(
            player_id,
            -amount,
            balance_after,
            tx_type=_reason_to_type(reason),
            reference_id=reference_id,
            correlation_id=correlation_id,
            description=reason,
        )
        logger.info(
            "credit_spent",
            player_id=player_id,
            amount=amount,
            balance_after=balance_after,
            reference_id=reference_id,
            correlation_id=correlation_id,
        )
        return True

    async def refund(
        self,
        player_id: str,
        amount: int,
        reference_id: str | None = None,
    ) -> None:
        """Credit back `amount`. A second refund with the same reference is ignored."""
        if amount <= 0:
            raise ValidationError("Refund amount must be positive", details={"amount": amount})

        if reference_id is not None:
            existing = await self.session.scalar(
                select(CreditTransaction.id).where(
                    CreditTransaction.user_id == player_id,
                    CreditTransaction.tx_type == CreditTransactionType.REFUND,
                    CreditTransaction.reference_id == reference_id,
                )
            )
            if existing:
                logger.info(
                    "credit_refund_duplicate",
                    player_id=player_id,
                    reference_id=reference_id,
                )
                return

        await self.add(
            player_id,
            amount,
            tx_type=CreditTransactionType.REFUND,
            reference_id=reference_id,
            description="Refund",
        )

    async def add(
        self,
        player_id: str,
        amount: int,
        *,
        tx_type: CreditTransactionType = CreditTransactionType.PURCHASE,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        """Credit the account, creating it on first use."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", details={"amount": amount})

        if not await self._increment(player_id, amount):
            try:
                async with self.session.begin_nested():
                    self.session.add(CreditAccount(user_id=player_id, balance=amount))
            except IntegrityError:
                # account created concurrently
                await self._increment(player_id, amount)

        balance_after = await self.get_balance(player_id)
        tx = await self._record(
            player_id,
            amount,
            balance_after,
            tx_type=tx_type,
            reference_id=reference_id,
            description=description,
        )
        logger.info(
            "credit_added",
            player_id=player_id,
            amount=amount,
            tx_type=tx_type.value,
            balance_after=balance_after,
            reference_id=reference_id,
        )
        return tx

    async def get_transactions(
        self,
        player_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        tx_type: CreditTransactionType | None = None,
    ) -> list[CreditTransaction]:
        query = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == player_id)
            .order_by(CreditTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if tx_type:
            query = query.where(CreditTransaction.tx_type == tx_type)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _increment(self, player_id: str, amount: int) -> bool:
        result = await self.session.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == player_id)
            .values(balance=CreditAccount.balance + amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _record(
        self,
        player_id: str,
        amount: int,
        balance_after: int,
        *,
        tx_type: CreditTransactionType,
        reference_id: str | None = None,
        correlation_id: str | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        tx = CreditTransaction(
            user_id=player_id,
            tx_type=tx_type,
            amount=amount,
            balance_after=balance_after,
            reference_id=reference_id,
            correlation_id=correlation_id,
            description=description,
            integrity_hash=self._compute_integrity_hash(
                user_id=player_id,
                tx_type=tx_type,
                amount=amount,
                balance_after=balance_after,
                reference_id=reference_id,
            ),
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    @staticmethod
    def _compute_integrity_hash(
        user_id: str,
        tx_type: CreditTransactionType,
        amount: int,
        balance_after: int,
        reference_id: str | None,
    ) -> str:
        """Compute SHA-256 integrity hash for a credit transaction."""
        data = f"{user_id}:{tx_type.value}:{amount}:{balance_after}:{reference_id or ''}"
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(tx: CreditTransaction) -> bool:
        """Verify transaction integrity hash."""
        expected = SqlCreditLedger._compute_integrity_hash(
            user_id=tx.user_id,
            tx_type=tx.tx_type,
            amount=tx.amount,
            balance_after=tx.balance_after,
            reference_id=tx.reference_id,
        )
        return tx.integrity_hash == expected


def _reason_to_type(reason: str) -> CreditTransactionType:
    try:
        return CreditTransactionType(reason)
    except ValueError:
        return CreditTransactionType.ADMIN_ADJUST
