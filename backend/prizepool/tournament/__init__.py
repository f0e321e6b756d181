"""
Mini-tournament prize-pool engine.

This module provides:
- Lifecycle state machine with conditional (compare-and-set) transitions
- Escrowed organizer deposits through the payment gateway
- Credit-paid registration with atomic seat reservation
- Prize distribution with per-winner failure isolation
"""

from .escrow import DepositIntent, EscrowDepositService
from .event_bus import TournamentEvent, TournamentEventBus, TournamentEventType
from .lifecycle import can_transition, validate_transition
from .registration import JoinResult, ParticipantRegistrar
from .service import TournamentService, validate_prize_table
from .settlement import (
    DistributionOutcome,
    PlacementResult,
    PrizeDistributor,
    calculate_prize_amounts,
)

__all__ = [
    "DepositIntent",
    "EscrowDepositService",
    "TournamentEvent",
    "TournamentEventBus",
    "TournamentEventType",
    "can_transition",
    "validate_transition",
    "JoinResult",
    "ParticipantRegistrar",
    "TournamentService",
    "validate_prize_table",
    "DistributionOutcome",
    "PlacementResult",
    "PrizeDistributor",
    "calculate_prize_amounts",
]
