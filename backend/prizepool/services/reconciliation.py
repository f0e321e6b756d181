"""Entry-fee reconciliation.

A join debits the entry fee and inserts the participant in one transaction,
and a failed insert is compensated by a refund keyed on the join's
correlation id. This report finds the charges that still have neither a
participant nor a refund, so operators can explain them.

Players who left a tournament also show up here (leaving does not refund);
the tournament status on each row tells the two apart.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from prizepool.config import Settings, get_settings
from prizepool.logging_config import get_logger
from prizepool.models.tournament import Participant, Tournament, TournamentStatus
from prizepool.models.wallet import CreditTransaction, CreditTransactionType
from prizepool.services.ledger import SqlCreditLedger

logger = get_logger(__name__)


@dataclass
class OrphanedCharge:
    transaction_id: str
    player_id: str
    tournament_id: str | None
    amount: int
    correlation_id: str | None
    charged_at: datetime
    tournament_status: TournamentStatus | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "player_id": self.player_id,
            "tournament_id": self.tournament_id,
            "amount": self.amount,
            "correlation_id": self.correlation_id,
            "charged_at": self.charged_at.isoformat(),
            "tournament_status": (
                self.tournament_status.value if self.tournament_status else None
            ),
        }


@dataclass
class ReconciliationReport:
    window_start: datetime
    window_end: datetime
    checked: int = 0
    orphaned: list[OrphanedCharge] = field(default_factory=list)
    invalid_hashes: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.invalid_hashes:
            return "integrity_error"
        return "mismatch" if self.orphaned else "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "checked": self.checked,
            "orphaned": [o.to_dict() for o in self.orphaned],
            "invalid_hashes": self.invalid_hashes,
        }


async def find_orphaned_entry_charges(
    session: AsyncSession,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> ReconciliationReport:
    """Scan entry-fee charges inside the reconciliation window.

    The window ends `reconciliation_grace_minutes` ago so joins still in
    flight are not reported.
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    window_end = now - timedelta(minutes=settings.reconciliation_grace_minutes)
    window_start = now - timedelta(hours=settings.reconciliation_lookback_hours)
    report = ReconciliationReport(window_start=window_start, window_end=window_end)

    charges = (
        await session.execute(
            select(CreditTransaction)
            .where(
                CreditTransaction.tx_type == CreditTransactionType.ENTRY_FEE,
                CreditTransaction.created_at >= window_start,
                CreditTransaction.created_at <= window_end,
            )
            .order_by(CreditTransaction.created_at)
        )
    ).scalars().all()
    report.checked = len(charges)
    report.invalid_hashes = [
        tx.id for tx in charges if not SqlCreditLedger.verify_integrity(tx)
    ]

    refund = aliased(CreditTransaction)
    has_participant = exists().where(
        Participant.tournament_id == CreditTransaction.reference_id,
        Participant.player_id == CreditTransaction.user_id,
    )
    has_refund = exists().where(
        and_(
            refund.tx_type == CreditTransactionType.REFUND,
            refund.user_id == CreditTransaction.user_id,
            refund.reference_id == CreditTransaction.correlation_id,
        )
    )
    rows = await session.execute(
        select(CreditTransaction, Tournament.status)
        .outerjoin(Tournament, Tournament.id == CreditTransaction.reference_id)
        .where(
            CreditTransaction.tx_type == CreditTransactionType.ENTRY_FEE,
            CreditTransaction.created_at >= window_start,
            CreditTransaction.created_at <= window_end,
            ~has_participant,
            ~has_refund,
        )
        .order_by(CreditTransaction.created_at)
    )
    for tx, tournament_status in rows.all():
        report.orphaned.append(
            OrphanedCharge(
                transaction_id=tx.id,
                player_id=tx.user_id,
                tournament_id=tx.reference_id,
                amount=-tx.amount,
                correlation_id=tx.correlation_id,
                charged_at=tx.created_at,
                tournament_status=tournament_status,
            )
        )

    if report.invalid_hashes:
        logger.error(
            "entry_charge_integrity_failed",
            transaction_ids=report.invalid_hashes,
        )
    for orphan in report.orphaned:
        logger.warning("entry_charge_without_participant", **orphan.to_dict())
    logger.info(
        "entry_charge_reconciliation_complete",
        status=report.status,
        checked=report.checked,
        orphaned=len(report.orphaned),
    )
    return report
