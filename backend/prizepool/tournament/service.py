"""Tournament administration: create, edit, delete and drive the lifecycle.

Money-moving transitions live elsewhere (escrow opens the tournament,
the distributor completes it); this service owns the rest.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.logging_config import get_logger
from prizepool.models.payment import Deposit, DepositStatus
from prizepool.models.tournament import Participant, Tournament, TournamentStatus
from prizepool.schemas.tournament import TournamentCreate, TournamentUpdate
from prizepool.tournament.event_bus import (
    TournamentEventBus,
    TournamentEventType,
    get_event_bus,
)
from prizepool.tournament.lifecycle import (
    cancellable_states,
    is_deletable,
    load_tournament,
    require_status,
    transition,
)
from prizepool.utils.errors import AuthorizationError, ErrorCode, StateError, ValidationError

logger = get_logger(__name__)


def validate_prize_table(table: Iterable[Any]) -> list[dict[str, Any]]:
    """Validate and normalize a prize table.

    Placements must be unique positive integers and percentages must be in
    (0, 100] and sum to exactly 100.

    Returns:
        [{"placement": int, "percentage": str}] sorted by placement
    """
    rows = []
    for entry in table:
        if isinstance(entry, dict):
            placement, percentage = entry.get("placement"), entry.get("percentage")
        else:
            placement, percentage = entry.placement, entry.percentage
        try:
            placement = int(placement)
            percentage = Decimal(str(percentage))
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(
                "Malformed prize table entry", details={"entry": str(entry)}
            ) from e
        if placement < 1:
            raise ValidationError("Placements start at 1", details={"placement": placement})
        if not Decimal(0) < percentage <= Decimal(100):
            raise ValidationError(
                "Percentages must be between 0 and 100",
                details={"placement": placement, "percentage": str(percentage)},
            )
        rows.append((placement, percentage))

    if not rows:
        raise ValidationError("Prize table cannot be empty")

    placements = [p for p, _ in rows]
    if len(set(placements)) != len(placements):
        raise ValidationError("Duplicate placement in prize table")

    total = sum((pct for _, pct in rows), Decimal(0))
    if total != Decimal(100):
        raise ValidationError(
            "Prize percentages must sum to 100",
            details={"total": str(total)},
        )

    return [
        {"placement": placement, "percentage": str(percentage)}
        for placement, percentage in sorted(rows)
    ]


def _validate_schedule(
    start_date: datetime | None,
    registration_deadline: datetime | None,
) -> None:
    if start_date and registration_deadline and registration_deadline > start_date:
        raise ValidationError("Registration deadline must be before the start date")


class TournamentService:
    """Organizer-facing tournament operations."""

    def __init__(
        self,
        session: AsyncSession,
        event_bus: TournamentEventBus | None = None,
    ) -> None:
        self.session = session
        self.event_bus = event_bus or get_event_bus()

    async def create_tournament(
        self,
        organizer_id: str,
        data: TournamentCreate,
    ) -> Tournament:
        table = validate_prize_table(data.prize_distribution)
        _validate_schedule(data.start_date, data.registration_deadline)

        tournament = Tournament(
            organizer_id=organizer_id,
            title=data.title,
            description=data.description,
            game=data.game,
            format=data.format,
            rules=data.rules,
            start_date=data.start_date,
            status=TournamentStatus.DRAFT,
            max_participants=data.max_participants,
            current_participants=0,
            entry_fee_credits=data.entry_fee_credits,
            prize_pool_amount=data.prize_pool_amount,
            prize_distribution=table,
            registration_deadline=data.registration_deadline,
            deposit_confirmed=False,
        )
        self.session.add(tournament)
        await self.session.commit()

        logger.info(
            "tournament_created",
            tournament_id=tournament.id,
            organizer_id=organizer_id,
            prize_pool=str(tournament.prize_pool_amount),
        )
        return tournament

    async def update_tournament(
        self,
        tournament_id: str,
        organizer_id: str,
        data: TournamentUpdate,
    ) -> Tournament:
        """Edit a tournament. Only drafts can change once money is involved."""
        tournament = await self._load_owned(tournament_id, organizer_id)
        require_status(tournament, TournamentStatus.DRAFT)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "prize_distribution" in changes:
            changes["prize_distribution"] = validate_prize_table(data.prize_distribution)
        _validate_schedule(
            changes.get("start_date", tournament.start_date),
            changes.get("registration_deadline", tournament.registration_deadline),
        )
        for name, value in changes.items():
            setattr(tournament, name, value)

        await self.session.commit()
        await self._emit_updated(tournament)
        return tournament

    async def delete_tournament(self, tournament_id: str, organizer_id: str) -> None:
        """Delete a tournament that never held confirmed money."""
        tournament = await self._load_owned(tournament_id, organizer_id)
        if not is_deletable(tournament.status) or tournament.deposit_confirmed:
            raise StateError(
                f"Cannot delete a tournament in {tournament.status.value}",
                details={"tournamentId": tournament_id},
            )

        confirmed = await self.session.scalar(
            select(func.count())
            .select_from(Deposit)
            .where(
                Deposit.tournament_id == tournament_id,
                Deposit.status == DepositStatus.CONFIRMED,
            )
        )
        if confirmed:
            raise StateError(
                "Tournament holds a confirmed deposit",
                details={"tournamentId": tournament_id},
            )

        # 입금 기록은 삭제하지 않고 토너먼트 참조만 끊음
        await self.session.execute(
            update(Deposit)
            .where(
                Deposit.tournament_id == tournament_id,
                Deposit.status == DepositStatus.PENDING,
            )
            .values(status=DepositStatus.FAILED, failure_reason="tournament_deleted")
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(Deposit)
            .where(Deposit.tournament_id == tournament_id)
            .values(tournament_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == tournament.status,
                Tournament.deposit_confirmed.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise StateError(
                "Tournament was modified concurrently",
                details={"tournamentId": tournament_id},
            )
        await self.session.commit()
        self.session.expunge(tournament)
        logger.info("tournament_deleted", tournament_id=tournament_id)

    async def cancel_tournament(self, tournament_id: str, organizer_id: str) -> Tournament:
        """Cancel from any non-terminal state. Does not move money."""
        tournament = await self._load_owned(tournament_id, organizer_id)
        require_status(tournament, *cancellable_states())
        if tournament.distribution_started_at is not None:
            raise StateError(
                "Prize distribution has started",
                code=ErrorCode.ALREADY_DISTRIBUTED,
                details={"tournamentId": tournament_id},
            )
        await transition(self.session, tournament, TournamentStatus.CANCELLED)
        await self.session.commit()

        if tournament.deposit_confirmed:
            logger.warning(
                "tournament_cancelled_with_deposit",
                tournament_id=tournament_id,
                prize_pool=str(tournament.prize_pool_amount),
                participants=tournament.current_participants,
            )
        await self._emit_updated(tournament)
        return tournament

    async def start_tournament(self, tournament_id: str, organizer_id: str) -> Tournament:
        """open -> in_progress. Registration closes."""
        tournament = await self._load_owned(tournament_id, organizer_id)
        await transition(self.session, tournament, TournamentStatus.IN_PROGRESS)
        await self.session.commit()
        await self._emit_updated(tournament)
        return tournament

    async def finish_tournament(self, tournament_id: str, organizer_id: str) -> Tournament:
        """in_progress -> awaiting_result. Play is over, results pending."""
        tournament = await self._load_owned(tournament_id, organizer_id)
        await transition(
            self.session,
            tournament,
            TournamentStatus.AWAITING_RESULT,
            results_submitted_at=datetime.now(timezone.utc),
        )
        await self.session.commit()
        await self._emit_updated(tournament)
        return tournament

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return await load_tournament(self.session, tournament_id)

    async def list_participants(self, tournament_id: str) -> list[Participant]:
        await load_tournament(self.session, tournament_id)
        result = await self.session.execute(
            select(Participant)
            .where(Participant.tournament_id == tournament_id)
            .order_by(Participant.placement.is_(None), Participant.placement, Participant.registered_at)
        )
        return list(result.scalars().all())

    async def _load_owned(self, tournament_id: str, organizer_id: str) -> Tournament:
        tournament = await load_tournament(self.session, tournament_id)
        if tournament.organizer_id != organizer_id:
            raise AuthorizationError(
                "Only the organizer can manage this tournament",
                details={"tournamentId": tournament_id},
            )
        return tournament

    async def _emit_updated(self, tournament: Tournament) -> None:
        await self.event_bus.emit(
            TournamentEventType.TOURNAMENT_UPDATED,
            tournament.id,
            status=tournament.status.value,
        )
