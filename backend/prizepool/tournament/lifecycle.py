"""Tournament lifecycle state machine.

    draft -> pending_deposit -> open -> in_progress -> awaiting_result -> completed
      \\___________\\_____________\\_________\\_______________\\_____-> cancelled

Every transition is written as a conditional UPDATE keyed on the expected
prior status, so two writers racing on the same tournament cannot both win.
"""

from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.logging_config import get_logger
from prizepool.models.tournament import Tournament, TournamentStatus
from prizepool.utils.errors import ErrorCode, NotFoundError, StateError

logger = get_logger(__name__)

_NON_TERMINAL = (
    TournamentStatus.DRAFT,
    TournamentStatus.PENDING_DEPOSIT,
    TournamentStatus.OPEN,
    TournamentStatus.IN_PROGRESS,
    TournamentStatus.AWAITING_RESULT,
)

TRANSITIONS: dict[TournamentStatus, frozenset[TournamentStatus]] = {
    TournamentStatus.DRAFT: frozenset(
        {TournamentStatus.PENDING_DEPOSIT, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.PENDING_DEPOSIT: frozenset(
        {TournamentStatus.OPEN, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.OPEN: frozenset(
        {TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.IN_PROGRESS: frozenset(
        {TournamentStatus.AWAITING_RESULT, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.AWAITING_RESULT: frozenset(
        {TournamentStatus.COMPLETED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.COMPLETED: frozenset(),
    TournamentStatus.CANCELLED: frozenset(),
}

DELETABLE_STATES = frozenset(
    {TournamentStatus.DRAFT, TournamentStatus.PENDING_DEPOSIT}
)


def can_transition(current: TournamentStatus, target: TournamentStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: TournamentStatus, target: TournamentStatus) -> None:
    """Raise StateError unless current -> target is in the transition map."""
    if not can_transition(current, target):
        raise StateError(
            f"Cannot move tournament from {current.value} to {target.value}",
            code=ErrorCode.INVALID_TRANSITION,
            details={"from": current.value, "to": target.value},
        )


def is_terminal(status: TournamentStatus) -> bool:
    return not TRANSITIONS[status]


def is_deletable(status: TournamentStatus) -> bool:
    return status in DELETABLE_STATES


async def load_tournament(
    session: AsyncSession,
    tournament_id: str,
) -> Tournament:
    """Fetch a tournament or raise NotFoundError."""
    tournament = await session.get(
        Tournament, tournament_id, populate_existing=True
    )
    if tournament is None:
        raise NotFoundError(
            "Tournament not found", details={"tournamentId": tournament_id}
        )
    return tournament


def require_status(tournament: Tournament, *allowed: TournamentStatus) -> None:
    """Raise StateError unless the tournament is in one of `allowed`."""
    if tournament.status not in allowed:
        raise StateError(
            f"Tournament is {tournament.status.value}",
            details={
                "tournamentId": tournament.id,
                "status": tournament.status.value,
                "allowed": [s.value for s in allowed],
            },
        )


async def transition(
    session: AsyncSession,
    tournament: Tournament,
    target: TournamentStatus,
    **values: Any,
) -> Tournament:
    """Move `tournament` to `target`, writing extra column `values` atomically.

    The UPDATE only matches if the row still has the status we read; losing
    that race raises StateError instead of overwriting the other writer.
    The in-memory object is refreshed from the database on success.
    """
    current = tournament.status
    validate_transition(current, target)

    result = await session.execute(
        update(Tournament)
        .where(Tournament.id == tournament.id, Tournament.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateError(
            "Tournament was modified concurrently",
            code=ErrorCode.CONCURRENT_MODIFICATION,
            details={
                "tournamentId": tournament.id,
                "expected": current.value,
                "to": target.value,
            },
        )

    await session.refresh(tournament)
    logger.info(
        "tournament_transition",
        tournament_id=tournament.id,
        from_status=current.value,
        to_status=target.value,
    )
    return tournament


def cancellable_states() -> tuple[TournamentStatus, ...]:
    return _NON_TERMINAL
