"""Mini-tournament and participant models.

- TournamentStatus: lifecycle states (see tournament.lifecycle)
- Tournament: organizer-funded tournament with a fixed prize pool
- Participant: a registered player and, after results, their prize
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from prizepool.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, utc_now

# 금액 컬럼 공통 타입 (통화 최소 단위 2자리)
Money = Numeric(12, 2)


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    DRAFT = "draft"
    PENDING_DEPOSIT = "pending_deposit"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_RESULT = "awaiting_result"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Community mini-tournament.

    Money invariants:
    - deposit_confirmed is only ever set by the escrow confirmation path
    - current_participants never exceeds max_participants
    - prizes_distributed_at is only set once every payout succeeded
    - distribution_started_at is set by exactly one payout batch
    """

    __tablename__ = "mini_tournaments"

    organizer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    game: Mapped[str | None] = mapped_column(String(100), nullable=True)
    format: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(TournamentStatus),
        default=TournamentStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Registration
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    entry_fee_credits: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Entry fee charged from the player's credit balance",
    )
    registration_deadline: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    # Prize pool
    prize_pool_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    prize_distribution: Mapped[list[dict]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="[{placement, percentage}], percentages sum to 100",
    )

    # Escrow
    deposit_confirmed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    deposit_confirmed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    deposit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Results
    results_submitted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    prizes_distributed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    # set when a payout batch claims the tournament
    distribution_started_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="ck_mini_tournament_capacity",
        ),
    )

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    def percentage_for(self, placement: int) -> Decimal | None:
        """Return the prize percentage for a placement, or None if unpaid."""
        for entry in self.prize_distribution or []:
            if int(entry["placement"]) == placement:
                return Decimal(str(entry["percentage"]))
        return None

    def __repr__(self) -> str:
        return f"<Tournament {self.id[:8]}... status={self.status.value}>"


class Participant(Base, UUIDMixin):
    """Registered player of a mini-tournament."""

    __tablename__ = "mini_tournament_participants"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("mini_tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    registered_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utc_now, nullable=False
    )

    # Results
    placement: Mapped[int | None] = mapped_column(Integer, nullable=True)
    prize_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    prize_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    prize_paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    prize_transfer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_participant_player"),
    )

    def __repr__(self) -> str:
        return f"<Participant {self.player_id[:8]}... in {self.tournament_id[:8]}...>"
