"""Mini-tournament request/response schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from prizepool.models.payment import DepositStatus, DistributionStatus
from prizepool.models.payout_key import PayoutKeyType
from prizepool.models.tournament import TournamentStatus
from prizepool.models.wallet import CreditTransactionType
from prizepool.schemas.common import BaseSchema


# =============================================================================
# Tournament
# =============================================================================


class PrizeTier(BaseSchema):
    """One row of the prize table."""

    placement: int = Field(..., ge=1)
    percentage: Decimal = Field(..., gt=0, le=100)


def _default_prize_table() -> list[PrizeTier]:
    return [PrizeTier(placement=1, percentage=Decimal(100))]


class TournamentCreate(BaseSchema):
    """Create a draft tournament."""

    title: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    game: str | None = Field(default=None, max_length=100)
    format: str | None = Field(default=None, max_length=50)
    rules: str | None = None
    start_date: datetime | None = Field(default=None, alias="startDate")
    max_participants: int = Field(..., ge=2, le=100, alias="maxParticipants")
    entry_fee_credits: int = Field(default=0, ge=0, alias="entryFeeCredits")
    prize_pool_amount: Decimal = Field(
        ..., gt=0, max_digits=12, decimal_places=2, alias="prizePoolAmount"
    )
    prize_distribution: list[PrizeTier] = Field(
        default_factory=_default_prize_table,
        min_length=1,
        alias="prizeDistribution",
    )
    registration_deadline: datetime | None = Field(
        default=None, alias="registrationDeadline"
    )


class TournamentUpdate(BaseSchema):
    """Edit a draft tournament. Omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    game: str | None = Field(default=None, max_length=100)
    format: str | None = Field(default=None, max_length=50)
    rules: str | None = None
    start_date: datetime | None = Field(default=None, alias="startDate")
    max_participants: int | None = Field(default=None, ge=2, le=100, alias="maxParticipants")
    entry_fee_credits: int | None = Field(default=None, ge=0, alias="entryFeeCredits")
    prize_pool_amount: Decimal | None = Field(
        default=None, gt=0, max_digits=12, decimal_places=2, alias="prizePoolAmount"
    )
    prize_distribution: list[PrizeTier] | None = Field(
        default=None, min_length=1, alias="prizeDistribution"
    )
    registration_deadline: datetime | None = Field(
        default=None, alias="registrationDeadline"
    )


class TournamentResponse(BaseSchema):
    id: str
    organizer_id: str = Field(..., alias="organizerId")
    title: str
    description: str | None = None
    game: str | None = None
    format: str | None = None
    start_date: datetime | None = Field(default=None, alias="startDate")
    status: TournamentStatus
    max_participants: int = Field(..., alias="maxParticipants")
    current_participants: int = Field(..., alias="currentParticipants")
    entry_fee_credits: int = Field(..., alias="entryFeeCredits")
    prize_pool_amount: Decimal = Field(..., alias="prizePoolAmount")
    prize_distribution: list[PrizeTier] = Field(..., alias="prizeDistribution")
    deposit_confirmed: bool = Field(..., alias="depositConfirmed")
    registration_deadline: datetime | None = Field(default=None, alias="registrationDeadline")
    results_submitted_at: datetime | None = Field(default=None, alias="resultsSubmittedAt")
    prizes_distributed_at: datetime | None = Field(default=None, alias="prizesDistributedAt")
    distribution_started_at: datetime | None = Field(
        default=None, alias="distributionStartedAt"
    )
    created_at: datetime = Field(..., alias="createdAt")


class ParticipantResponse(BaseSchema):
    id: str
    player_id: str = Field(..., alias="playerId")
    registered_at: datetime = Field(..., alias="registeredAt")
    placement: int | None = None
    prize_amount: Decimal | None = Field(default=None, alias="prizeAmount")
    prize_paid: bool = Field(..., alias="prizePaid")


class PayoutEstimate(BaseSchema):
    placement: int
    percentage: Decimal
    amount: Decimal


# =============================================================================
# Escrow
# =============================================================================


class DepositCreateRequest(BaseSchema):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payer_email: str | None = Field(default=None, alias="payerEmail")


class DepositResponse(BaseSchema):
    deposit_id: str = Field(..., alias="depositId")
    gateway_reference: str = Field(..., alias="gatewayReference")
    amount: Decimal
    displayable_code: str | None = Field(default=None, alias="displayableCode")
    raw_image: str | None = Field(default=None, alias="rawImage")


class DepositStatusResponse(BaseSchema):
    id: str
    amount: Decimal
    status: DepositStatus
    gateway_reference: str = Field(..., alias="gatewayReference")
    paid_at: datetime | None = Field(default=None, alias="paidAt")
    created_at: datetime = Field(..., alias="createdAt")


# =============================================================================
# Registration
# =============================================================================


class JoinResponse(BaseSchema):
    participant_id: str = Field(..., alias="participantId")
    already_registered: bool = Field(default=False, alias="alreadyRegistered")
    charged_credits: int = Field(default=0, alias="chargedCredits")


# =============================================================================
# Distribution
# =============================================================================


class ResultEntry(BaseSchema):
    player_id: str = Field(..., alias="playerId")
    placement: int = Field(..., ge=1)


class DistributeRequest(BaseSchema):
    results: list[ResultEntry] = Field(..., min_length=1)


class DistributionItem(BaseSchema):
    distribution_id: str = Field(..., alias="distributionId")
    player_id: str = Field(..., alias="playerId")
    placement: int
    amount: Decimal
    status: DistributionStatus
    transfer_id: str | None = Field(default=None, alias="transferId")
    error_message: str | None = Field(default=None, alias="errorMessage")
    completed_at: datetime | None = Field(default=None, alias="completedAt")


class PartialFailureInfo(BaseSchema):
    failed_player_ids: list[str] = Field(..., alias="failedPlayerIds")
    failed_amount: Decimal = Field(..., alias="failedAmount")
    errors: dict[str, str] = Field(default_factory=dict)


class DistributeResponse(BaseSchema):
    distributions: list[DistributionItem]
    all_successful: bool = Field(..., alias="allSuccessful")
    partial_failure: PartialFailureInfo | None = Field(default=None, alias="partialFailure")


# =============================================================================
# Payout keys / credits
# =============================================================================


class PayoutKeyRequest(BaseSchema):
    key: str = Field(..., min_length=3, max_length=140)
    key_type: PayoutKeyType = Field(..., alias="keyType")


class PayoutKeyResponse(BaseSchema):
    key: str
    key_type: PayoutKeyType = Field(..., alias="keyType")
    updated_at: datetime = Field(..., alias="updatedAt")


class CreditBalanceResponse(BaseSchema):
    balance: int


class CreditTransactionResponse(BaseSchema):
    id: str
    tx_type: CreditTransactionType = Field(..., alias="txType")
    amount: int
    balance_after: int = Field(..., alias="balanceAfter")
    reference_id: str | None = Field(default=None, alias="referenceId")
    description: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
