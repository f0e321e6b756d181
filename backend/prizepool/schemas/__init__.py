"""Pydantic schemas for API requests and responses."""

from prizepool.schemas.common import (
    BaseSchema,
    ErrorDetail,
    ErrorResponse,
)
from prizepool.schemas.tournament import (
    DepositCreateRequest,
    DepositResponse,
    DistributeRequest,
    DistributeResponse,
    JoinResponse,
    PrizeTier,
    TournamentCreate,
    TournamentResponse,
    TournamentUpdate,
)

__all__ = [
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    "DepositCreateRequest",
    "DepositResponse",
    "DistributeRequest",
    "DistributeResponse",
    "JoinResponse",
    "PrizeTier",
    "TournamentCreate",
    "TournamentResponse",
    "TournamentUpdate",
]
