"""Escrow deposit and prize distribution records.

Rows in both tables are never deleted; only their status moves forward.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from prizepool.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from prizepool.models.payout_key import PayoutKeyType
from prizepool.models.tournament import Money


class DepositStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"


class DistributionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Deposit(Base, UUIDMixin, TimestampMixin):
    """Organizer's prize-pool payment held in escrow."""

    __tablename__ = "prize_deposits"

    # NULL once the tournament is deleted; the record itself is kept
    tournament_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("mini_tournaments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    organizer_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[DepositStatus] = mapped_column(
        SQLEnum(DepositStatus),
        default=DepositStatus.PENDING,
        nullable=False,
        index=True,
    )
    gateway_reference: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="Payment id on the gateway side",
    )
    displayable_code: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Copy-paste payment code"
    )
    raw_image: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Base64 QR image"
    )
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Deposit {self.gateway_reference} {self.amount} status={self.status.value}>"


class Distribution(Base, UUIDMixin, TimestampMixin):
    """One prize payout to one winner."""

    __tablename__ = "prize_distributions"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("mini_tournaments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    participant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("mini_tournament_participants.id", ondelete="RESTRICT"),
        nullable=False,
    )
    player_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    placement: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Destination copied at distribution time
    payout_destination: Mapped[str] = mapped_column(String(140), nullable=False)
    payout_destination_type: Mapped[PayoutKeyType] = mapped_column(
        SQLEnum(PayoutKeyType), nullable=False
    )

    status: Mapped[DistributionStatus] = mapped_column(
        SQLEnum(DistributionStatus),
        default=DistributionStatus.PENDING,
        nullable=False,
        index=True,
    )
    transfer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "participant_id", name="uq_distribution_participant"),
    )

    def __repr__(self) -> str:
        return (
            f"<Distribution #{self.placement} {self.amount} "
            f"status={self.status.value}>"
        )
