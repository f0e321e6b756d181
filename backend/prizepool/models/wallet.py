"""Credit balance and credit transaction models.

Credits are the internal currency players pay entry fees with.
- CreditAccount: one balance row per user
- CreditTransaction: append-only log with integrity hash
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Enum as SQLEnum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from prizepool.models.base import Base, TimestampMixin, UUIDMixin


class CreditTransactionType(str, Enum):
    """Credit transaction types."""

    PURCHASE = "purchase"
    ENTRY_FEE = "mini_tournament_entry"
    REFUND = "refund"
    ADMIN_ADJUST = "admin_adjust"


class CreditAccount(Base, TimestampMixin):
    """User credit balance."""

    __tablename__ = "credit_accounts"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<CreditAccount {self.user_id[:8]}... balance={self.balance}>"


class CreditTransaction(Base, UUIDMixin, TimestampMixin):
    """Credit movement with full audit trail."""

    __tablename__ = "credit_transactions"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    tx_type: Mapped[CreditTransactionType] = mapped_column(
        SQLEnum(CreditTransactionType),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Credit amount (+credit/-debit)",
    )
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    # Tournament id for entry fees, join correlation id for refunds
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    integrity_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hash for tamper detection",
    )

    __table_args__ = (
        Index("ix_credit_tx_reference", "tx_type", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction {self.id[:8]}... "
            f"type={self.tx_type.value} amount={self.amount}>"
        )
