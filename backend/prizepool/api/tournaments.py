"""Mini-tournament API endpoints.

Endpoints:
- POST   /mini-tournaments                       - Create a draft
- GET    /mini-tournaments/{id}                  - Tournament detail
- PATCH  /mini-tournaments/{id}                  - Edit a draft
- DELETE /mini-tournaments/{id}                  - Delete (no confirmed money)
- POST   /mini-tournaments/{id}/cancel|start|finish
- GET    /mini-tournaments/{id}/participants
- GET    /mini-tournaments/{id}/payouts/estimate
- POST   /mini-tournaments/{id}/deposit          - Request the prize deposit
- GET    /mini-tournaments/{id}/deposits
- POST   /mini-tournaments/{id}/join             - Register (charges entry fee)
- POST   /mini-tournaments/{id}/leave            - Leave (no refund)
- DELETE /mini-tournaments/{id}/join             - Same as /leave
- POST   /mini-tournaments/{id}/distribute       - Submit results, pay prizes
- POST   /mini-tournaments/{id}/results          - Same as /distribute
- POST   /mini-tournaments/{id}/payouts/retry    - Re-drive failed payouts
- GET    /mini-tournaments/{id}/distributions
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from prizepool.api.deps import (
    CurrentUserId,
    DbSession,
    EventBus,
    get_credit_ledger,
    get_join_notifier,
    get_payment_gateway,
    get_payout_adapter,
)
from prizepool.schemas.common import ERROR_RESPONSES
from prizepool.schemas.tournament import (
    DepositCreateRequest,
    DepositResponse,
    DepositStatusResponse,
    DistributeRequest,
    DistributeResponse,
    DistributionItem,
    JoinResponse,
    ParticipantResponse,
    PartialFailureInfo,
    PayoutEstimate,
    TournamentCreate,
    TournamentResponse,
    TournamentUpdate,
)
from prizepool.services.ledger import CreditLedger
from prizepool.services.notifications import JoinNotifier
from prizepool.services.payment_gateway import PaymentGateway
from prizepool.services.payout_transfer import PayoutAdapter
from prizepool.tournament.escrow import EscrowDepositService
from prizepool.tournament.registration import ParticipantRegistrar
from prizepool.tournament.service import TournamentService
from prizepool.tournament.settlement import (
    DistributionOutcome,
    PlacementResult,
    PrizeDistributor,
)
from prizepool.utils.errors import AuthorizationError

router = APIRouter(
    prefix="/api/v1/mini-tournaments",
    tags=["Mini Tournaments"],
    responses=ERROR_RESPONSES,
)


def _distribute_response(outcome: DistributionOutcome) -> DistributeResponse:
    failure = outcome.partial_failure
    return DistributeResponse(
        distributions=[
            DistributionItem.model_validate(d) for d in outcome.distributions
        ],
        all_successful=outcome.all_successful,
        partial_failure=(
            PartialFailureInfo(
                failed_player_ids=failure.failed_player_ids,
                failed_amount=failure.failed_amount,
                errors=failure.errors,
            )
            if failure
            else None
        ),
    )


# =============================================================================
# Administration
# =============================================================================


@router.post("", response_model=TournamentResponse, status_code=status.HTTP_201_CREATED)
async def create_tournament(
    body: TournamentCreate,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    """Create a draft tournament. It opens once the prize deposit is paid."""
    service = TournamentService(db, event_bus)
    return await service.create_tournament(user_id, body)


@router.get("/{tournament_id}", response_model=TournamentResponse)
async def get_tournament(tournament_id: str, db: DbSession, event_bus: EventBus):
    return await TournamentService(db, event_bus).get_tournament(tournament_id)


@router.patch("/{tournament_id}", response_model=TournamentResponse)
async def update_tournament(
    tournament_id: str,
    body: TournamentUpdate,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    service = TournamentService(db, event_bus)
    return await service.update_tournament(tournament_id, user_id, body)


@router.delete("/{tournament_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    await TournamentService(db, event_bus).delete_tournament(tournament_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{tournament_id}/cancel", response_model=TournamentResponse)
async def cancel_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    """Cancel the tournament. Held funds are not moved automatically."""
    service = TournamentService(db, event_bus)
    return await service.cancel_tournament(tournament_id, user_id)


@router.post("/{tournament_id}/start", response_model=TournamentResponse)
async def start_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    service = TournamentService(db, event_bus)
    return await service.start_tournament(tournament_id, user_id)


@router.post("/{tournament_id}/finish", response_model=TournamentResponse)
async def finish_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
):
    service = TournamentService(db, event_bus)
    return await service.finish_tournament(tournament_id, user_id)


@router.get("/{tournament_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(tournament_id: str, db: DbSession, event_bus: EventBus):
    return await TournamentService(db, event_bus).list_participants(tournament_id)


@router.get("/{tournament_id}/payouts/estimate", response_model=list[PayoutEstimate])
async def estimate_payouts(
    tournament_id: str,
    db: DbSession,
    event_bus: EventBus,
    payout_adapter: Annotated[PayoutAdapter, Depends(get_payout_adapter)],
):
    """Prize per placement as shown on the registration screen."""
    tournament = await TournamentService(db, event_bus).get_tournament(tournament_id)
    distributor = PrizeDistributor(db, payout_adapter, event_bus)
    return distributor.estimate_payouts(tournament)


# =============================================================================
# Escrow
# =============================================================================


@router.post(
    "/{tournament_id}/deposit",
    response_model=DepositResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_deposit(
    tournament_id: str,
    body: DepositCreateRequest,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
):
    """Request a charge intent for the full prize pool."""
    escrow = EscrowDepositService(db, gateway, event_bus)
    intent = await escrow.create_deposit(
        tournament_id, user_id, body.amount, payer_email=body.payer_email
    )
    return DepositResponse.model_validate(intent)


@router.get("/{tournament_id}/deposits", response_model=list[DepositStatusResponse])
async def list_deposits(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
):
    tournament = await TournamentService(db, event_bus).get_tournament(tournament_id)
    if tournament.organizer_id != user_id:
        raise AuthorizationError(
            "Only the organizer can view deposits",
            details={"tournamentId": tournament_id},
        )
    return await EscrowDepositService(db, gateway, event_bus).get_deposits(tournament_id)


# =============================================================================
# Registration
# =============================================================================


@router.post("/{tournament_id}/join", response_model=JoinResponse)
async def join_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    ledger: Annotated[CreditLedger, Depends(get_credit_ledger)],
    notifier: Annotated[JoinNotifier, Depends(get_join_notifier)],
):
    """Register for an open tournament, paying the entry fee in credits."""
    registrar = ParticipantRegistrar(db, ledger, notifier, event_bus)
    return await registrar.join(tournament_id, user_id)


@router.post("/{tournament_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
@router.delete("/{tournament_id}/join", status_code=status.HTTP_204_NO_CONTENT)
async def leave_tournament(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    ledger: Annotated[CreditLedger, Depends(get_credit_ledger)],
    notifier: Annotated[JoinNotifier, Depends(get_join_notifier)],
):
    """Leave before the start. The entry fee is not refunded."""
    registrar = ParticipantRegistrar(db, ledger, notifier, event_bus)
    await registrar.leave(tournament_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Settlement
# =============================================================================


@router.post("/{tournament_id}/distribute", response_model=DistributeResponse)
@router.post("/{tournament_id}/results", response_model=DistributeResponse)
async def submit_results(
    tournament_id: str,
    body: DistributeRequest,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    payout_adapter: Annotated[PayoutAdapter, Depends(get_payout_adapter)],
):
    """Record placements and pay every winner.

    Individual payout failures do not fail the request; they are listed in
    partialFailure and can be retried.
    """
    distributor = PrizeDistributor(db, payout_adapter, event_bus)
    outcome = await distributor.distribute(
        tournament_id,
        user_id,
        [PlacementResult(player_id=r.player_id, placement=r.placement) for r in body.results],
    )
    return _distribute_response(outcome)


@router.post("/{tournament_id}/payouts/retry", response_model=DistributeResponse)
async def retry_payouts(
    tournament_id: str,
    user_id: CurrentUserId,
    db: DbSession,
    event_bus: EventBus,
    payout_adapter: Annotated[PayoutAdapter, Depends(get_payout_adapter)],
):
    distributor = PrizeDistributor(db, payout_adapter, event_bus)
    outcome = await distributor.retry_failed(tournament_id, user_id)
    return _distribute_response(outcome)


@router.get("/{tournament_id}/distributions", response_model=list[DistributionItem])
async def list_distributions(
    tournament_id: str,
    db: DbSession,
    event_bus: EventBus,
    payout_adapter: Annotated[PayoutAdapter, Depends(get_payout_adapter)],
):
    await TournamentService(db, event_bus).get_tournament(tournament_id)
    distributor = PrizeDistributor(db, payout_adapter, event_bus)
    rows = await distributor.get_distributions(tournament_id)
    return [
        DistributionItem(
            distribution_id=r.id,
            player_id=r.player_id,
            placement=r.placement,
            amount=r.amount,
            status=r.status,
            transfer_id=r.transfer_id,
            error_message=r.error_message,
            completed_at=r.completed_at,
        )
        for r in rows
    ]
