"""Row factories for tests. Each helper commits so the row is visible to other sessions."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.models import (
    CreditAccount,
    Participant,
    PayoutKey,
    PayoutKeyType,
    Tournament,
    TournamentStatus,
)


def new_id() -> str:
    return str(uuid4())


async def make_tournament(
    session: AsyncSession,
    *,
    organizer_id: str | None = None,
    status: TournamentStatus = TournamentStatus.OPEN,
    prize_pool: str = "1000.00",
    table: list[dict[str, Any]] | None = None,
    max_participants: int = 8,
    entry_fee: int = 0,
    current_participants: int = 0,
    deposit_confirmed: bool | None = None,
    registration_deadline: datetime | None = None,
) -> Tournament:
    """Insert a tournament directly in the given state and commit."""
    if deposit_confirmed is None:
        deposit_confirmed = status not in (
            TournamentStatus.DRAFT,
            TournamentStatus.PENDING_DEPOSIT,
        )
    tournament = Tournament(
        organizer_id=organizer_id or new_id(),
        title="Friday Night Cup",
        status=status,
        max_participants=max_participants,
        current_participants=current_participants,
        entry_fee_credits=entry_fee,
        prize_pool_amount=Decimal(prize_pool),
        prize_distribution=table or [{"placement": 1, "percentage": "100"}],
        registration_deadline=registration_deadline,
        deposit_confirmed=deposit_confirmed,
        deposit_confirmed_at=datetime.now(timezone.utc) if deposit_confirmed else None,
    )
    session.add(tournament)
    await session.commit()
    return tournament


async def give_credits(session: AsyncSession, user_id: str, balance: int) -> None:
    session.add(CreditAccount(user_id=user_id, balance=balance))
    await session.commit()


async def give_payout_key(
    session: AsyncSession,
    user_id: str,
    key: str | None = None,
    key_type: PayoutKeyType = PayoutKeyType.EMAIL,
) -> PayoutKey:
    payout_key = PayoutKey(
        user_id=user_id,
        key=key or f"{user_id[:8]}@example.com",
        key_type=key_type,
    )
    session.add(payout_key)
    await session.commit()
    return payout_key


async def add_participant(
    session: AsyncSession,
    tournament: Tournament,
    player_id: str | None = None,
) -> Participant:
    """Register a player without going through the registrar."""
    participant = Participant(tournament_id=tournament.id, player_id=player_id or new_id())
    session.add(participant)
    tournament.current_participants += 1
    await session.commit()
    return participant


def auth(user_id: str) -> dict[str, str]:
    """Headers for a request made by `user_id`."""
    return {"X-User-Id": user_id}
