"""Escrow deposit service.

The organizer pays the full prize pool up front through the payment gateway.
The tournament only opens for registration once the gateway confirms that
payment, and confirm_deposit is the only code path that sets
deposit_confirmed.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config import Settings, get_settings
from prizepool.logging_config import get_logger
from prizepool.models.payment import Deposit, DepositStatus
from prizepool.models.tournament import Tournament, TournamentStatus
from prizepool.services.payment_gateway import PaymentGateway
from prizepool.tournament.event_bus import (
    TournamentEventBus,
    TournamentEventType,
    get_event_bus,
)
from prizepool.tournament.lifecycle import load_tournament, require_status, transition
from prizepool.utils.errors import (
    AuthorizationError,
    ErrorCode,
    NotFoundError,
    StateError,
    ValidationError,
)

logger = get_logger(__name__)


@dataclass
class DepositIntent:
    """What the organizer needs to pay the deposit."""

    deposit_id: str
    gateway_reference: str
    amount: Decimal
    displayable_code: str | None
    raw_image: str | None


class EscrowDepositService:
    """Organizer prize-pool deposits."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        event_bus: TournamentEventBus | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.event_bus = event_bus or get_event_bus()
        self.settings = settings or get_settings()

    async def create_deposit(
        self,
        tournament_id: str,
        organizer_id: str,
        amount: Decimal | str | int,
        payer_email: str | None = None,
    ) -> DepositIntent:
        """Request a charge intent for the prize pool.

        Allowed from draft, or from pending_deposit when the previous deposit
        failed. Nothing is written if the gateway call fails.

        Raises:
            AuthorizationError: caller is not the organizer
            StateError: deposit already confirmed or still pending
            ValidationError: amount differs from the prize pool
            ExternalGatewayError: gateway failure or timeout
        """
        tournament = await load_tournament(self.session, tournament_id)

        if tournament.organizer_id != organizer_id:
            raise AuthorizationError(
                "Only the organizer can fund this tournament",
                details={"tournamentId": tournament_id},
            )
        if tournament.deposit_confirmed:
            raise StateError(
                "Prize deposit already confirmed",
                details={"tournamentId": tournament_id},
            )
        require_status(
            tournament, TournamentStatus.DRAFT, TournamentStatus.PENDING_DEPOSIT
        )

        previous_deposit_id = tournament.deposit_id
        if tournament.status == TournamentStatus.PENDING_DEPOSIT:
            pending = await self._find_active_deposit(tournament_id)
            if pending is not None:
                raise StateError(
                    "A prize deposit is already awaiting payment",
                    details={
                        "tournamentId": tournament_id,
                        "depositId": pending.id,
                    },
                )

        amount = _to_decimal(amount)
        if amount != tournament.prize_pool_amount:
            raise ValidationError(
                "Deposit amount must equal the prize pool",
                code=ErrorCode.AMOUNT_MISMATCH,
                details={
                    "expected": str(tournament.prize_pool_amount),
                    "received": str(amount),
                },
            )

        # 게이트웨이 호출 전에는 아무것도 저장하지 않음
        intent = await self.gateway.create_charge_intent(
            amount,
            payer_email
            or f"{organizer_id}@{self.settings.gateway_payer_email_domain}",
            description=f"Prize pool: {tournament.title}",
            idempotency_key=f"prize-deposit-{tournament_id}-{int(time.time() * 1000)}",
            metadata={"tournament_id": tournament_id, "type": "prize_deposit"},
        )

        deposit = Deposit(
            tournament_id=tournament_id,
            organizer_id=organizer_id,
            amount=amount,
            status=DepositStatus.PENDING,
            gateway_reference=intent.reference,
            displayable_code=intent.displayable_code,
            raw_image=intent.raw_image,
        )
        self.session.add(deposit)
        await self.session.flush()

        if tournament.status == TournamentStatus.DRAFT:
            await transition(
                self.session,
                tournament,
                TournamentStatus.PENDING_DEPOSIT,
                deposit_id=deposit.id,
            )
        else:
            await self._replace_failed_deposit(tournament, previous_deposit_id, deposit.id)

        await self.session.commit()

        logger.info(
            "prize_deposit_created",
            tournament_id=tournament_id,
            deposit_id=deposit.id,
            gateway_reference=intent.reference,
            amount=str(amount),
        )
        await self.event_bus.emit(
            TournamentEventType.TOURNAMENT_UPDATED,
            tournament_id,
            status=tournament.status.value,
        )

        return DepositIntent(
            deposit_id=deposit.id,
            gateway_reference=intent.reference,
            amount=amount,
            displayable_code=intent.displayable_code,
            raw_image=intent.raw_image,
        )

    async def confirm_deposit(
        self,
        gateway_reference: str,
        paid_amount: Decimal | None = None,
    ) -> Tournament:
        """Mark the deposit paid and open the tournament.

        Idempotent: a repeated confirmation returns the tournament unchanged.

        Raises:
            ValidationError: `paid_amount` differs from the deposit (AMOUNT_MISMATCH);
                nothing is recorded
        """
        deposit = await self._get_by_reference(gateway_reference)

        if deposit.status == DepositStatus.CONFIRMED:
            logger.info(
                "prize_deposit_already_confirmed",
                tournament_id=deposit.tournament_id,
                gateway_reference=gateway_reference,
            )
            return await load_tournament(self.session, deposit.tournament_id)
        if deposit.status != DepositStatus.PENDING or deposit.tournament_id is None:
            raise StateError(
                f"Deposit is {deposit.status.value}",
                details={"gatewayReference": gateway_reference},
            )
        if paid_amount is not None and paid_amount != deposit.amount:
            logger.error(
                "prize_deposit_amount_mismatch",
                tournament_id=deposit.tournament_id,
                gateway_reference=gateway_reference,
                expected=str(deposit.amount),
                received=str(paid_amount),
            )
            raise ValidationError(
                "Paid amount does not match the prize deposit",
                code=ErrorCode.AMOUNT_MISMATCH,
                details={
                    "expected": str(deposit.amount),
                    "received": str(paid_amount),
                    "gatewayReference": gateway_reference,
                },
            )

        tournament = await load_tournament(self.session, deposit.tournament_id)

        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(Deposit)
            .where(Deposit.id == deposit.id, Deposit.status == DepositStatus.PENDING)
            .values(status=DepositStatus.CONFIRMED, paid_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # lost the race to another confirmation
            await self.session.rollback()
            await self.session.refresh(deposit)
            if deposit.status == DepositStatus.CONFIRMED:
                return await load_tournament(self.session, deposit.tournament_id)
            raise StateError(
                f"Deposit is {deposit.status.value}",
                details={"gatewayReference": gateway_reference},
            )

        if tournament.status == TournamentStatus.PENDING_DEPOSIT:
            await transition(
                self.session,
                tournament,
                TournamentStatus.OPEN,
                deposit_confirmed=True,
                deposit_confirmed_at=now,
                deposit_id=deposit.id,
            )
        elif tournament.status == TournamentStatus.CANCELLED:
            # 취소 후 입금: 자금은 보관 중이므로 플래그만 기록
            await self.session.execute(
                update(Tournament)
                .where(Tournament.id == tournament.id)
                .values(
                    deposit_confirmed=True,
                    deposit_confirmed_at=now,
                    deposit_id=deposit.id,
                )
                .execution_options(synchronize_session=False)
            )
            logger.warning(
                "prize_deposit_after_cancellation",
                tournament_id=tournament.id,
                deposit_id=deposit.id,
                amount=str(deposit.amount),
            )
        else:
            raise StateError(
                f"Tournament is {tournament.status.value}",
                details={"tournamentId": tournament.id},
            )

        await self.session.commit()
        await self.session.refresh(tournament)

        logger.info(
            "prize_deposit_confirmed",
            tournament_id=tournament.id,
            deposit_id=deposit.id,
            amount=str(deposit.amount),
        )
        await self.event_bus.emit(
            TournamentEventType.DEPOSIT_CONFIRMED,
            tournament.id,
            status=tournament.status.value,
        )
        return tournament

    async def fail_deposit(self, gateway_reference: str, reason: str | None = None) -> Deposit:
        """Record a rejected or cancelled payment.

        The tournament stays in pending_deposit so the organizer can retry.
        """
        deposit = await self._get_by_reference(gateway_reference)
        if deposit.status != DepositStatus.PENDING:
            return deposit

        deposit.status = DepositStatus.FAILED
        deposit.failure_reason = (reason or "")[:255] or None
        await self.session.commit()

        logger.warning(
            "prize_deposit_failed",
            tournament_id=deposit.tournament_id,
            deposit_id=deposit.id,
            reason=reason,
        )
        await self.event_bus.emit(
            TournamentEventType.TOURNAMENT_UPDATED,
            deposit.tournament_id,
            deposit_status=deposit.status.value,
        )
        return deposit

    async def get_deposits(self, tournament_id: str) -> list[Deposit]:
        result = await self.session.execute(
            select(Deposit)
            .where(Deposit.tournament_id == tournament_id)
            .order_by(Deposit.created_at.desc())
        )
        return list(result.scalars().all())

    async def _find_active_deposit(self, tournament_id: str) -> Deposit | None:
        return await self.session.scalar(
            select(Deposit).where(
                Deposit.tournament_id == tournament_id,
                Deposit.status.in_([DepositStatus.PENDING, DepositStatus.CONFIRMED]),
            )
        )

    async def _get_by_reference(self, gateway_reference: str) -> Deposit:
        deposit = await self.session.scalar(
            select(Deposit)
            .where(Deposit.gateway_reference == gateway_reference)
            .execution_options(populate_existing=True)
        )
        if deposit is None:
            raise NotFoundError(
                "Deposit not found",
                details={"gatewayReference": gateway_reference},
            )
        return deposit

    async def _replace_failed_deposit(
        self,
        tournament: Tournament,
        previous_deposit_id: str | None,
        deposit_id: str,
    ) -> None:
        """Point the tournament at the new deposit unless someone else already did."""
        if previous_deposit_id is None:
            condition = Tournament.deposit_id.is_(None)
        else:
            condition = Tournament.deposit_id == previous_deposit_id

        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament.id,
                Tournament.status == TournamentStatus.PENDING_DEPOSIT,
                condition,
            )
            .values(deposit_id=deposit_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StateError(
                "Tournament was modified concurrently",
                code=ErrorCode.CONCURRENT_MODIFICATION,
                details={"tournamentId": tournament.id},
            )
        await self.session.refresh(tournament)


def _to_decimal(value: Decimal | str | int) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError("Invalid amount", details={"amount": str(value)}) from e
