"""Domain exception classes for the prize-pool engine.

Every error carries a stable code, a human readable message and a details dict,
so the API layer can render them without knowing the concrete type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"

    # Tournament state
    INVALID_STATE = "INVALID_STATE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    NOT_REGISTERED = "NOT_REGISTERED"
    ALREADY_DISTRIBUTED = "ALREADY_DISTRIBUTED"

    # Money
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    PAYOUT_KEY_MISSING = "PAYOUT_KEY_MISSING"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class PrizePoolError(Exception):
    """Base exception for prize-pool errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | str | None = None,
        details: dict[str, Any] | None = None,
    ):
        code = code or self.default_code
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PrizePoolError):
    """Malformed input, amount mismatch, missing payout destination."""

    default_code = ErrorCode.VALIDATION_ERROR


class AuthorizationError(PrizePoolError):
    """Caller is not allowed to perform the operation."""

    default_code = ErrorCode.FORBIDDEN


class StateError(PrizePoolError):
    """Operation not allowed in the tournament's current state."""

    default_code = ErrorCode.INVALID_STATE


class CapacityError(PrizePoolError):
    """Tournament has no free seat."""

    default_code = ErrorCode.TOURNAMENT_FULL

    def __init__(self, tournament_id: str, max_participants: int | None = None):
        super().__init__(
            "Tournament is full",
            details={
                "tournamentId": tournament_id,
                "maxParticipants": max_participants,
            },
        )


class InsufficientFundsError(PrizePoolError):
    """Player's credit balance does not cover the entry fee."""

    default_code = ErrorCode.INSUFFICIENT_FUNDS

    def __init__(self, required: int, player_id: str | None = None):
        super().__init__(
            f"Insufficient credits: {required} required",
            details={"required": required, "playerId": player_id},
        )


class ExternalGatewayError(PrizePoolError):
    """Payment gateway failed, timed out or returned an unusable answer."""

    default_code = ErrorCode.GATEWAY_ERROR


class NotFoundError(PrizePoolError):
    """Referenced entity does not exist."""

    default_code = ErrorCode.NOT_FOUND


class SignatureError(PrizePoolError):
    """Inbound webhook signature could not be verified."""

    default_code = ErrorCode.INVALID_SIGNATURE


@dataclass
class PartialDistributionFailure:
    """Report of a distribution batch where some payouts failed.

    Not raised: attached to the distribution outcome so callers can surface
    which winners still need to be paid.
    """

    tournament_id: str
    failed_player_ids: list[str] = field(default_factory=list)
    failed_amount: Decimal = Decimal("0")
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tournamentId": self.tournament_id,
            "failedPlayerIds": self.failed_player_ids,
            "failedAmount": str(self.failed_amount),
            "errors": self.errors,
        }
