"""Database models."""

from prizepool.models.base import Base, TimestampMixin, UUIDMixin
from prizepool.models.payment import (
    Deposit,
    DepositStatus,
    Distribution,
    DistributionStatus,
)
from prizepool.models.payout_key import PayoutKey, PayoutKeyType
from prizepool.models.tournament import Participant, Tournament, TournamentStatus
from prizepool.models.wallet import (
    CreditAccount,
    CreditTransaction,
    CreditTransactionType,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Tournament
    "Tournament",
    "TournamentStatus",
    "Participant",
    # Escrow / payouts
    "Deposit",
    "DepositStatus",
    "Distribution",
    "DistributionStatus",
    "PayoutKey",
    "PayoutKeyType",
    # Credits
    "CreditAccount",
    "CreditTransaction",
    "CreditTransactionType",
]
