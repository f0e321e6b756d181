"""Business logic services and external adapters."""

from prizepool.services.ledger import CreditLedger, SqlCreditLedger
from prizepool.services.notifications import (
    CeleryJoinNotifier,
    JoinNotifier,
    NullJoinNotifier,
)
from prizepool.services.payment_gateway import (
    ChargeIntent,
    GatewayPayment,
    MercadoPagoGateway,
    PaymentGateway,
)
from prizepool.services.payout_keys import PayoutKeyService
from prizepool.services.payout_transfer import (
    MercadoPagoPayoutAdapter,
    PayoutAdapter,
    SimulatedPayoutAdapter,
    TransferResult,
    get_payout_adapter,
)

__all__ = [
    "CreditLedger",
    "SqlCreditLedger",
    "CeleryJoinNotifier",
    "JoinNotifier",
    "NullJoinNotifier",
    "ChargeIntent",
    "GatewayPayment",
    "MercadoPagoGateway",
    "PaymentGateway",
    "PayoutKeyService",
    "MercadoPagoPayoutAdapter",
    "PayoutAdapter",
    "SimulatedPayoutAdapter",
    "TransferResult",
    "get_payout_adapter",
]
