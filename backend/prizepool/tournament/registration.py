"""Participant registration.

join() is a small saga over one database transaction:

    reserve seat (conditional UPDATE) -> spend entry fee -> insert participant

A seat is only taken if one is free at the moment of the UPDATE, and the entry
fee is only debited if the balance covers it. If the participant insert fails
after the fee was taken, the fee is refunded and the seat released. Every step
is logged with the join's correlation id so the reconciliation job can explain
any charge that has no participant.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.logging_config import get_logger
from prizepool.models.tournament import Participant, Tournament, TournamentStatus
from prizepool.models.wallet import CreditTransactionType
from prizepool.services.ledger import CreditLedger, SqlCreditLedger
from prizepool.services.notifications import CeleryJoinNotifier, JoinNotifier
from prizepool.services.payout_keys import PayoutKeyService
from prizepool.tournament.event_bus import (
    TournamentEventBus,
    TournamentEventType,
    get_event_bus,
)
from prizepool.tournament.lifecycle import load_tournament, require_status
from prizepool.utils.errors import (
    CapacityError,
    ErrorCode,
    InsufficientFundsError,
    NotFoundError,
    PrizePoolError,
    StateError,
    ValidationError,
)

logger = get_logger(__name__)


@dataclass
class JoinResult:
    participant_id: str
    tournament_id: str
    player_id: str
    already_registered: bool = False
    charged_credits: int = 0
    correlation_id: str | None = None


class ParticipantRegistrar:
    """Admits players into open tournaments."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: CreditLedger | None = None,
        notifier: JoinNotifier | None = None,
        event_bus: TournamentEventBus | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or SqlCreditLedger(session)
        self.notifier = notifier or CeleryJoinNotifier()
        self.event_bus = event_bus or get_event_bus()
        self.payout_keys = PayoutKeyService(session)

    async def join(
        self,
        tournament_id: str,
        player_id: str,
        now: datetime | None = None,
    ) -> JoinResult:
        """Register a player, charging the entry fee exactly once.

        Checks, in order: status is open, player not yet registered, a seat
        is free, deadline not passed, payout key on file. A second call for
        the same player returns the existing registration without charging.

        Raises:
            StateError: not open, or registration deadline passed
            CapacityError: no free seat
            ValidationError: no payout key on file
            InsufficientFundsError: balance below the entry fee
        """
        correlation_id = f"join-{uuid4().hex[:16]}"
        log = logger.bind(
            correlation_id=correlation_id,
            tournament_id=tournament_id,
            player_id=player_id,
        )

        tournament = await load_tournament(self.session, tournament_id)
        require_status(tournament, TournamentStatus.OPEN)

        existing = await self.get_participant(tournament_id, player_id)
        if existing is not None:
            log.info("join_already_registered", participant_id=existing.id)
            return JoinResult(
                participant_id=existing.id,
                tournament_id=tournament_id,
                player_id=player_id,
                already_registered=True,
            )

        if tournament.is_full:
            raise CapacityError(tournament_id, tournament.max_participants)

        now = now or datetime.now(timezone.utc)
        if tournament.registration_deadline and now >= tournament.registration_deadline:
            raise StateError(
                "Registration deadline has passed",
                code=ErrorCode.REGISTRATION_CLOSED,
                details={
                    "tournamentId": tournament_id,
                    "deadline": tournament.registration_deadline.isoformat(),
                },
            )

        if await self.payout_keys.get(player_id) is None:
            raise ValidationError(
                "Register a payout key before joining a prize tournament",
                code=ErrorCode.PAYOUT_KEY_MISSING,
                details={"playerId": player_id},
            )

        await self._reserve_seat(tournament)
        log.info("join_seat_reserved")

        fee = tournament.entry_fee_credits
        if fee > 0:
            charged = await self.ledger.spend(
                player_id,
                fee,
                CreditTransactionType.ENTRY_FEE.value,
                reference_id=tournament_id,
                correlation_id=correlation_id,
            )
            if not charged:
                # seat reservation is rolled back with the transaction
                await self.session.rollback()
                log.info("join_rejected_insufficient_funds", entry_fee=fee)
                raise InsufficientFundsError(fee, player_id)
            log.info("join_entry_fee_charged", entry_fee=fee)

        participant = Participant(tournament_id=tournament_id, player_id=player_id)
        try:
            async with self.session.begin_nested():
                self.session.add(participant)
        except IntegrityError:
            log.warning("join_participant_insert_failed")
            return await self._compensate(tournament, player_id, fee, correlation_id)

        await self.session.commit()
        await self.session.refresh(tournament)
        log.info(
            "join_completed",
            participant_id=participant.id,
            current_participants=tournament.current_participants,
        )

        await self.event_bus.emit(
            TournamentEventType.PARTICIPANT_JOINED,
            tournament_id,
            user_id=player_id,
            current_participants=tournament.current_participants,
        )
        await self._notify_organizer(tournament, player_id, correlation_id)

        return JoinResult(
            participant_id=participant.id,
            tournament_id=tournament_id,
            player_id=player_id,
            charged_credits=fee,
            correlation_id=correlation_id,
        )

    async def leave(self, tournament_id: str, player_id: str) -> None:
        """Withdraw from an open tournament. The entry fee is not refunded."""
        tournament = await load_tournament(self.session, tournament_id)
        require_status(tournament, TournamentStatus.OPEN)

        participant = await self.get_participant(tournament_id, player_id)
        if participant is None:
            raise NotFoundError(
                "Player is not registered",
                code=ErrorCode.NOT_REGISTERED,
                details={"tournamentId": tournament_id, "playerId": player_id},
            )

        result = await self.session.execute(
            delete(Participant)
            .where(Participant.id == participant.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFoundError(
                "Player is not registered",
                code=ErrorCode.NOT_REGISTERED,
                details={"tournamentId": tournament_id, "playerId": player_id},
            )

        if not await self._release_seat(tournament_id, require_open=True):
            await self.session.rollback()
            raise StateError(
                "Tournament is no longer open",
                details={"tournamentId": tournament_id},
            )

        await self.session.commit()
        self.session.expunge(participant)

        logger.info(
            "participant_left",
            tournament_id=tournament_id,
            player_id=player_id,
            entry_fee_refunded=False,
        )
        await self.event_bus.emit(
            TournamentEventType.PARTICIPANT_LEFT,
            tournament_id,
            user_id=player_id,
        )

    async def get_participant(self, tournament_id: str, player_id: str) -> Participant | None:
        return await self.session.scalar(
            select(Participant).where(
                Participant.tournament_id == tournament_id,
                Participant.player_id == player_id,
            )
        )

    async def _reserve_seat(self, tournament: Tournament) -> None:
        tournament_id = tournament.id
        max_participants = tournament.max_participants
        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.OPEN,
                Tournament.current_participants < Tournament.max_participants,
            )
            .values(current_participants=Tournament.current_participants + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            # rollback expired the instance
            reloaded = await load_tournament(self.session, tournament_id)
            require_status(reloaded, TournamentStatus.OPEN)
            raise CapacityError(tournament_id, max_participants)

    async def _release_seat(self, tournament_id: str, require_open: bool = False) -> bool:
        conditions = [
            Tournament.id == tournament_id,
            Tournament.current_participants > 0,
        ]
        if require_open:
            conditions.append(Tournament.status == TournamentStatus.OPEN)

        result = await self.session.execute(
            update(Tournament)
            .where(*conditions)
            .values(current_participants=Tournament.current_participants - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _compensate(
        self,
        tournament: Tournament,
        player_id: str,
        fee: int,
        correlation_id: str,
    ) -> JoinResult:
        """Undo a join whose participant insert failed after the fee was taken."""
        log = logger.bind(
            correlation_id=correlation_id,
            tournament_id=tournament.id,
            player_id=player_id,
        )

        if fee > 0:
            await self.ledger.refund(player_id, fee, reference_id=correlation_id)
            log.warning("join_entry_fee_refunded", entry_fee=fee)
        await self._release_seat(tournament.id)
        await self.session.commit()
        log.warning("join_seat_released")

        # a concurrent join for the same player won the unique constraint
        existing = await self.get_participant(tournament.id, player_id)
        if existing is None:
            raise PrizePoolError(
                "Registration failed, entry fee refunded",
                details={"tournamentId": tournament.id, "correlationId": correlation_id},
            )
        return JoinResult(
            participant_id=existing.id,
            tournament_id=tournament.id,
            player_id=player_id,
            already_registered=True,
            correlation_id=correlation_id,
        )

    async def _notify_organizer(
        self,
        tournament: Tournament,
        player_id: str,
        correlation_id: str,
    ) -> None:
        try:
            await self.notifier.participant_joined(tournament, player_id)
        except Exception as e:
            logger.warning(
                "join_notification_failed",
                correlation_id=correlation_id,
                tournament_id=tournament.id,
                error=str(e),
            )
