"""Reconciliation and payout retry tasks."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select

from prizepool.config import get_settings
from prizepool.models.tournament import Tournament, TournamentStatus
from prizepool.services.reconciliation import find_orphaned_entry_charges
from prizepool.tasks.celery_app import celery_app
from prizepool.tournament.settlement import PrizeDistributor
from prizepool.utils.db import close_db, get_db_session
from prizepool.utils.errors import PrizePoolError

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="prizepool.tasks.reconciliation.reconcile_entry_charges_task",
    max_retries=3,
    default_retry_delay=300,
)
def reconcile_entry_charges_task(self):
    """Report entry-fee charges that have no participant and no refund."""
    logger.info(
        f"Starting entry charge reconciliation (attempt {self.request.retries + 1})"
    )
    return asyncio.run(_run(_reconcile_entry_charges()))


@celery_app.task(
    bind=True,
    name="prizepool.tasks.reconciliation.retry_failed_payouts_task",
    max_retries=1,
)
def retry_failed_payouts_task(self):
    """Re-drive failed payouts and resume distributions that stopped midway."""
    return asyncio.run(_run(_retry_failed_payouts()))


async def _run(coro):
    # 태스크마다 새 이벤트 루프이므로 커넥션 풀을 매번 정리
    try:
        return await coro
    finally:
        await close_db()


async def _reconcile_entry_charges() -> dict:
    async with get_db_session() as session:
        report = await find_orphaned_entry_charges(session)
    return report.to_dict()


async def _retry_failed_payouts() -> dict:
    summary = {"tournaments": 0, "settled": 0, "still_failing": 0, "errors": 0}

    settings = get_settings()
    stale_before = datetime.now(timezone.utc) - timedelta(
        minutes=settings.distribution_stale_minutes
    )

    async with get_db_session() as session:
        tournament_ids = (
            await session.scalars(
                select(Tournament.id).where(
                    or_(
                        and_(
                            Tournament.status == TournamentStatus.COMPLETED,
                            Tournament.prizes_distributed_at.is_(None),
                        ),
                        # 분배 도중 멈춘 토너먼트
                        and_(
                            Tournament.status == TournamentStatus.AWAITING_RESULT,
                            Tournament.distribution_started_at < stale_before,
                        ),
                    )
                )
            )
        ).all()

        distributor = PrizeDistributor(session, settings=settings)
        for tournament_id in tournament_ids:
            summary["tournaments"] += 1
            try:
                outcome = await distributor.retry_failed(tournament_id)
            except PrizePoolError as e:
                await session.rollback()
                summary["errors"] += 1
                logger.warning(f"Payout retry skipped for {tournament_id}: {e.message}")
                continue
            if outcome.all_successful:
                summary["settled"] += 1
            else:
                summary["still_failing"] += 1

    logger.info(f"Payout retry run complete: {summary}")
    return summary
