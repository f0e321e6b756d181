"""
Prize Distribution Service.

결과 제출 시 상금 분배 및 PIX 송금.

Features:
- 순위별 상금 계산 (prize_distribution 테이블 기반, ROUND_HALF_EVEN)
- 송금 전 전체 사전 검증 (하나라도 실패하면 아무것도 지급하지 않음)
- 우승자별 실패 격리: 한 명의 송금 실패가 나머지를 막지 않음
- 실패 건 재시도 (retry_failed)
- 토너먼트당 한 번만 분배 (distribution_started_at 조건부 UPDATE 로 선점)

Usage:
    distributor = PrizeDistributor(session, payout_adapter)
    outcome = await distributor.distribute(tournament_id, organizer_id, results)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config import Settings, get_settings
from prizepool.middleware.sentry import capture_payout_error
from prizepool.models.payment import Distribution, DistributionStatus
from prizepool.models.tournament import Participant, Tournament, TournamentStatus
from prizepool.services.payout_keys import PayoutKeyService
from prizepool.services.payout_transfer import (
    PayoutAdapter,
    TransferResult,
    get_payout_adapter,
)
from prizepool.tournament.event_bus import (
    TournamentEventBus,
    TournamentEventType,
    get_event_bus,
)
from prizepool.tournament.lifecycle import load_tournament, require_status, transition
from prizepool.utils.errors import (
    AuthorizationError,
    ErrorCode,
    PartialDistributionFailure,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class PlacementResult:
    """Organizer-submitted result: who finished where."""

    player_id: str
    placement: int


@dataclass
class DistributionResult:
    """송금 결과."""

    distribution_id: str
    player_id: str
    placement: int
    amount: Decimal
    status: DistributionStatus
    transfer_id: str | None = None
    error_message: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Distribution) -> "DistributionResult":
        return cls(
            distribution_id=row.id,
            player_id=row.player_id,
            placement=row.placement,
            amount=row.amount,
            status=row.status,
            transfer_id=row.transfer_id,
            error_message=row.error_message,
            completed_at=row.completed_at,
        )

    @property
    def success(self) -> bool:
        return self.status == DistributionStatus.CONFIRMED

    def to_dict(self) -> dict[str, Any]:
        return {
            "distribution_id": self.distribution_id,
            "player_id": self.player_id,
            "placement": self.placement,
            "amount": str(self.amount),
            "status": self.status.value,
            "transfer_id": self.transfer_id,
            "error_message": self.error_message,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class DistributionOutcome:
    """분배 요약."""

    tournament_id: str
    distributions: list[DistributionResult] = field(default_factory=list)
    all_successful: bool = True
    partial_failure: PartialDistributionFailure | None = None

    @property
    def total_paid(self) -> Decimal:
        return sum((d.amount for d in self.distributions if d.success), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "distributions": [d.to_dict() for d in self.distributions],
            "all_successful": self.all_successful,
            "total_paid": str(self.total_paid),
            "partial_failure": (
                self.partial_failure.to_dict() if self.partial_failure else None
            ),
        }


def calculate_prize_amounts(
    prize_pool: Decimal,
    table: Iterable[dict],
    minor_unit: Decimal = Decimal("0.01"),
) -> dict[int, Decimal]:
    """
    순위별 상금 계산.

    amount = pool * percentage / 100, rounded half-even to the minor unit.
    The rounding remainder of the full table is added to the lowest
    placement so the amounts always sum to the pool.

    Returns:
        Dict of placement -> amount
    """
    amounts: dict[int, Decimal] = {}
    for entry in table:
        placement = int(entry["placement"])
        percentage = Decimal(str(entry["percentage"]))
        amounts[placement] = (prize_pool * percentage / Decimal(100)).quantize(
            minor_unit, rounding=ROUND_HALF_EVEN
        )

    if amounts:
        remainder = prize_pool - sum(amounts.values())
        if remainder:
            amounts[min(amounts)] += remainder
    return amounts


class PrizeDistributor:
    """
    상금 분배 서비스.

    Validates the whole batch up front, then pays winners one at a time,
    persisting each Distribution before and after its transfer.
    """

    def __init__(
        self,
        session: AsyncSession,
        payout_adapter: PayoutAdapter | None = None,
        event_bus: TournamentEventBus | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.payout_adapter = payout_adapter or get_payout_adapter(self.settings)
        self.event_bus = event_bus or get_event_bus()
        self.payout_keys = PayoutKeyService(session)

    async def distribute(
        self,
        tournament_id: str,
        organizer_id: str,
        results: Iterable[PlacementResult | dict],
    ) -> DistributionOutcome:
        """
        결과 제출 및 상금 지급.

        Raises (before any money moves):
            AuthorizationError: caller is not the organizer
            StateError: deposit not confirmed, already distributed, wrong status
            ValidationError: bad placements, non-participants, missing payout keys
        """
        tournament = await load_tournament(self.session, tournament_id)
        results = _normalize_results(results)

        if tournament.organizer_id != organizer_id:
            raise AuthorizationError(
                "Only the organizer can submit results",
                details={"tournamentId": tournament_id},
            )
        if tournament.prizes_distributed_at is not None or (
            tournament.status == TournamentStatus.COMPLETED
        ):
            raise StateError(
                "Prizes were already distributed",
                code=ErrorCode.ALREADY_DISTRIBUTED,
                details={"tournamentId": tournament_id},
            )
        if tournament.distribution_started_at is not None:
            # 중단된 분배는 retry_failed 로 재개
            raise StateError(
                "Prize distribution was already started",
                code=ErrorCode.ALREADY_DISTRIBUTED,
                details={
                    "tournamentId": tournament_id,
                    "distributionStartedAt": tournament.distribution_started_at.isoformat(),
                },
            )
        if not tournament.deposit_confirmed:
            raise StateError(
                "Prize deposit has not been confirmed",
                details={"tournamentId": tournament_id},
            )
        require_status(
            tournament, TournamentStatus.IN_PROGRESS, TournamentStatus.AWAITING_RESULT
        )

        participants = await self._validate_results(tournament, results)
        keys = await self.payout_keys.get_many([r.player_id for r in results])
        missing = [r.player_id for r in results if r.player_id not in keys]
        if missing:
            raise ValidationError(
                f"Players without a payout key: {', '.join(missing)}",
                code=ErrorCode.PAYOUT_KEY_MISSING,
                details={"playerIds": missing},
            )

        amounts = calculate_prize_amounts(
            tournament.prize_pool_amount,
            tournament.prize_distribution,
            self.settings.minor_unit,
        )
        zero = [r.placement for r in results if amounts[r.placement] <= 0]
        if zero:
            raise ValidationError(
                "Prize for placement rounds to zero",
                details={"placements": zero},
            )

        logger.info(
            f"Starting prize distribution: {tournament_id} "
            f"pool={tournament.prize_pool_amount} winners={len(results)}"
        )

        await self._claim(tournament)

        # 결과 기록
        try:
            now = datetime.now(timezone.utc)
            if tournament.status == TournamentStatus.IN_PROGRESS:
                await transition(
                    self.session,
                    tournament,
                    TournamentStatus.AWAITING_RESULT,
                    results_submitted_at=now,
                )
            elif tournament.results_submitted_at is None:
                tournament.results_submitted_at = now

            for result in results:
                participant = participants[result.player_id]
                participant.placement = result.placement
                participant.prize_amount = amounts[result.placement]
            await self.session.commit()
        except Exception:
            await self._release_claim(tournament_id)
            raise

        # 순위순 순차 지급
        rows: list[Distribution] = []
        for result in sorted(results, key=lambda r: r.placement):
            participant = participants[result.player_id]
            key = keys[result.player_id]
            row = Distribution(
                tournament_id=tournament_id,
                participant_id=participant.id,
                player_id=result.player_id,
                placement=result.placement,
                amount=amounts[result.placement],
                payout_destination=key.key,
                payout_destination_type=key.key_type,
                status=DistributionStatus.PENDING,
                attempts=0,
            )
            self.session.add(row)
            await self.session.commit()

            await self._pay(row, participant, tournament)
            rows.append(row)

        all_successful = all(r.status == DistributionStatus.CONFIRMED for r in rows)
        completion: dict[str, Any] = {}
        if all_successful:
            completion["prizes_distributed_at"] = datetime.now(timezone.utc)
        await transition(
            self.session, tournament, TournamentStatus.COMPLETED, **completion
        )
        await self.session.commit()

        outcome = self._build_outcome(tournament_id, rows)
        logger.info(
            f"Prize distribution complete: {tournament_id} "
            f"total_paid={outcome.total_paid} all_successful={outcome.all_successful}"
        )
        await self._emit_completed(outcome)
        return outcome

    async def retry_failed(
        self,
        tournament_id: str,
        organizer_id: str | None = None,
    ) -> DistributionOutcome:
        """
        실패한 지급 재시도.

        Only failed rows are re-driven. Once every row of the tournament is
        confirmed, prizes_distributed_at is stamped.

        A batch that stopped before reaching completed (still awaiting_result
        with a claim older than distribution_stale_minutes) is resumed instead.

        Args:
            organizer_id: None when called by the background job
        """
        tournament = await load_tournament(self.session, tournament_id)
        if organizer_id is not None and tournament.organizer_id != organizer_id:
            raise AuthorizationError(
                "Only the organizer can retry payouts",
                details={"tournamentId": tournament_id},
            )
        if (
            tournament.status == TournamentStatus.AWAITING_RESULT
            and tournament.distribution_started_at is not None
        ):
            return await self._resume(tournament)
        require_status(tournament, TournamentStatus.COMPLETED)
        if tournament.prizes_distributed_at is not None:
            raise StateError(
                "All prizes were already paid",
                code=ErrorCode.ALREADY_DISTRIBUTED,
                details={"tournamentId": tournament_id},
            )

        rows = await self.get_distributions(tournament_id)
        failed = [r for r in rows if r.status == DistributionStatus.FAILED]
        logger.info(f"Retrying {len(failed)} failed payouts for {tournament_id}")

        for row in failed:
            participant = await self.session.get(Participant, row.participant_id)
            await self._pay(row, participant, tournament)

        if rows and all(r.status == DistributionStatus.CONFIRMED for r in rows):
            await self.session.execute(
                update(Tournament)
                .where(
                    Tournament.id == tournament_id,
                    Tournament.prizes_distributed_at.is_(None),
                )
                .values(prizes_distributed_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            await self.session.refresh(tournament)

        outcome = self._build_outcome(tournament_id, rows)
        await self._emit_completed(outcome)
        return outcome

    async def get_distributions(self, tournament_id: str) -> list[Distribution]:
        result = await self.session.execute(
            select(Distribution)
            .where(Distribution.tournament_id == tournament_id)
            .order_by(Distribution.placement)
        )
        return list(result.scalars().all())

    def estimate_payouts(self, tournament: Tournament) -> list[dict[str, Any]]:
        """
        예상 상금 계산 (등록 화면 표시용).
        """
        amounts = calculate_prize_amounts(
            tournament.prize_pool_amount,
            tournament.prize_distribution,
            self.settings.minor_unit,
        )
        return [
            {
                "placement": placement,
                "percentage": tournament.percentage_for(placement),
                "amount": amount,
            }
            for placement, amount in sorted(amounts.items())
        ]

    async def _validate_results(
        self,
        tournament: Tournament,
        results: list[PlacementResult],
    ) -> dict[str, Participant]:
        if not results:
            raise ValidationError("At least one result is required")

        players = [r.player_id for r in results]
        placements = [r.placement for r in results]
        if len(set(players)) != len(players):
            raise ValidationError("A player can only have one placement")
        if len(set(placements)) != len(placements):
            raise ValidationError("Each placement can only be awarded once")

        unknown = [p for p in placements if tournament.percentage_for(p) is None]
        if unknown:
            raise ValidationError(
                "Placements not in the prize table",
                details={"placements": unknown},
            )

        result = await self.session.execute(
            select(Participant).where(
                Participant.tournament_id == tournament.id,
                Participant.player_id.in_(players),
            )
        )
        participants = {p.player_id: p for p in result.scalars().all()}
        outsiders = [p for p in players if p not in participants]
        if outsiders:
            raise ValidationError(
                "Players are not registered in this tournament",
                details={"playerIds": outsiders},
            )
        return participants

    async def _claim(self, tournament: Tournament) -> None:
        """Stamp distribution_started_at. Only one batch per tournament wins."""
        tournament_id = tournament.id
        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status.in_(
                    (TournamentStatus.IN_PROGRESS, TournamentStatus.AWAITING_RESULT)
                ),
                Tournament.distribution_started_at.is_(None),
                Tournament.prizes_distributed_at.is_(None),
                ~_has_distributions(tournament_id),
            )
            .values(distribution_started_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            logger.warning(f"Prize distribution already claimed: {tournament_id}")
            raise StateError(
                "Prizes were already distributed",
                code=ErrorCode.ALREADY_DISTRIBUTED,
                details={"tournamentId": tournament_id},
            )
        await self.session.commit()
        await self.session.refresh(tournament)

    async def _release_claim(self, tournament_id: str) -> None:
        """Undo _claim for a batch that failed before any row was written."""
        await self.session.rollback()
        await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                ~_has_distributions(tournament_id),
            )
            .values(distribution_started_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        logger.warning(f"Released prize distribution claim: {tournament_id}")

    async def _resume(self, tournament: Tournament) -> DistributionOutcome:
        """
        중단된 분배 재개.

        Writes the rows the stopped run never created, then re-sends every
        row that is not confirmed. A pending row keeps its idempotency key,
        so a transfer the rail already made is not made twice.
        """
        tournament_id = tournament.id
        claimed_at = tournament.distribution_started_at
        stale_after = timedelta(minutes=self.settings.distribution_stale_minutes)
        if datetime.now(timezone.utc) - claimed_at < stale_after:
            raise StateError(
                "Prize distribution is still running",
                code=ErrorCode.CONCURRENT_MODIFICATION,
                details={
                    "tournamentId": tournament_id,
                    "distributionStartedAt": claimed_at.isoformat(),
                },
            )

        rows = await self.get_distributions(tournament_id)
        result = await self.session.execute(
            select(Participant)
            .where(
                Participant.tournament_id == tournament_id,
                Participant.placement.is_not(None),
            )
            .order_by(Participant.placement)
        )
        placed = list(result.scalars().all())
        written = {r.participant_id for r in rows}
        unwritten = [p for p in placed if p.id not in written]
        keys = await self.payout_keys.get_many([p.player_id for p in unwritten])
        missing = [p.player_id for p in unwritten if p.player_id not in keys]
        if missing:
            raise ValidationError(
                f"Players without a payout key: {', '.join(missing)}",
                code=ErrorCode.PAYOUT_KEY_MISSING,
                details={"playerIds": missing},
            )

        # 다른 재개 작업과 경쟁: 읽은 claim 이 그대로일 때만 인수
        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.AWAITING_RESULT,
                Tournament.distribution_started_at == claimed_at,
            )
            .values(distribution_started_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise StateError(
                "Tournament was modified concurrently",
                code=ErrorCode.CONCURRENT_MODIFICATION,
                details={"tournamentId": tournament_id},
            )
        await self.session.commit()
        logger.warning(
            f"Resuming prize distribution: {tournament_id} "
            f"rows={len(rows)} unwritten={len(unwritten)}"
        )

        for participant in unwritten:
            key = keys[participant.player_id]
            row = Distribution(
                tournament_id=tournament_id,
                participant_id=participant.id,
                player_id=participant.player_id,
                placement=participant.placement,
                amount=participant.prize_amount,
                payout_destination=key.key,
                payout_destination_type=key.key_type,
                status=DistributionStatus.PENDING,
                attempts=0,
            )
            self.session.add(row)
            await self.session.commit()
            rows.append(row)

        by_id = {p.id: p for p in placed}
        rows.sort(key=lambda r: r.placement)
        for row in rows:
            if row.status != DistributionStatus.CONFIRMED:
                await self._pay(row, by_id[row.participant_id], tournament)

        all_successful = all(r.status == DistributionStatus.CONFIRMED for r in rows)
        completion: dict[str, Any] = {}
        if all_successful:
            completion["prizes_distributed_at"] = datetime.now(timezone.utc)
        await transition(
            self.session, tournament, TournamentStatus.COMPLETED, **completion
        )
        await self.session.commit()

        outcome = self._build_outcome(tournament_id, rows)
        logger.info(
            f"Prize distribution resumed: {tournament_id} "
            f"total_paid={outcome.total_paid} all_successful={outcome.all_successful}"
        )
        await self._emit_completed(outcome)
        return outcome

    async def _pay(
        self,
        row: Distribution,
        participant: Participant,
        tournament: Tournament,
    ) -> None:
        """Call the payout rail for one row and persist the outcome."""
        row.attempts += 1
        try:
            transfer = await asyncio.wait_for(
                self.payout_adapter.transfer(
                    row.amount,
                    row.payout_destination,
                    f"Prize #{row.placement}: {tournament.title}",
                    destination_type=row.payout_destination_type,
                    idempotency_key=f"prize-distribution-{row.id}",
                ),
                timeout=self.settings.payout_timeout_seconds,
            )
        except asyncio.TimeoutError:
            transfer = TransferResult(success=False, error="Payout timed out")
        except Exception as e:
            logger.exception(
                f"Unexpected error paying prize: {row.player_id} amount={row.amount}"
            )
            transfer = TransferResult(success=False, error=f"Unexpected error: {e}")
            capture_payout_error(
                e, tournament.id, row.player_id, str(row.amount),
                extra={"distribution_id": row.id},
            )

        now = datetime.now(timezone.utc)
        if transfer.success:
            row.status = DistributionStatus.CONFIRMED
            row.transfer_id = transfer.transfer_id
            row.error_message = None
            row.completed_at = now
            participant.prize_paid = True
            participant.prize_paid_at = now
            participant.prize_transfer_id = transfer.transfer_id
            logger.info(
                f"Prize paid: {row.player_id} placement={row.placement} "
                f"amount={row.amount} transfer={transfer.transfer_id}"
            )
        else:
            row.status = DistributionStatus.FAILED
            row.transfer_id = transfer.transfer_id
            row.error_message = transfer.error or "Payout failed"
            logger.error(
                f"Failed to pay prize: {row.player_id} placement={row.placement} "
                f"amount={row.amount} error={row.error_message}"
            )
        await self.session.commit()

    def _build_outcome(
        self,
        tournament_id: str,
        rows: list[Distribution],
    ) -> DistributionOutcome:
        results = [DistributionResult.from_row(r) for r in rows]
        failed = [r for r in results if not r.success]
        outcome = DistributionOutcome(
            tournament_id=tournament_id,
            distributions=results,
            all_successful=not failed,
        )
        if failed:
            outcome.partial_failure = PartialDistributionFailure(
                tournament_id=tournament_id,
                failed_player_ids=[r.player_id for r in failed],
                failed_amount=sum((r.amount for r in failed), Decimal("0")),
                errors={r.player_id: r.error_message or "" for r in failed},
            )
        return outcome

    async def _emit_completed(self, outcome: DistributionOutcome) -> None:
        await self.event_bus.emit(
            TournamentEventType.DISTRIBUTION_COMPLETED,
            outcome.tournament_id,
            all_successful=outcome.all_successful,
            total_paid=str(outcome.total_paid),
        )


def _has_distributions(tournament_id: str):
    return (
        select(Distribution.id)
        .where(Distribution.tournament_id == tournament_id)
        .exists()
    )


def _normalize_results(results: Iterable[PlacementResult | dict]) -> list[PlacementResult]:
    normalized = []
    for r in results:
        if isinstance(r, PlacementResult):
            normalized.append(r)
        else:
            try:
                normalized.append(
                    PlacementResult(player_id=str(r["player_id"]), placement=int(r["placement"]))
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError("Malformed result entry", details={"entry": str(r)}) from e
    return normalized
