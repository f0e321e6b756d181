"""Entry-fee reconciliation tests."""

from datetime import datetime, timedelta, timezone

import pytest
from factories import add_participant, give_credits, make_tournament, new_id
from sqlalchemy import select, update

from prizepool.models.tournament import TournamentStatus
from prizepool.models.wallet import CreditTransaction, CreditTransactionType
from prizepool.services.ledger import SqlCreditLedger
from prizepool.services.reconciliation import find_orphaned_entry_charges

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


async def _charge(session, tournament_id, *, minutes_ago=60, amount=20, correlation_id=None):
    """Debit an entry fee and backdate it."""
    player = new_id()
    await give_credits(session, player, 100)
    correlation_id = correlation_id or f"join-{player[:8]}"
    await SqlCreditLedger(session).spend(
        player,
        amount,
        CreditTransactionType.ENTRY_FEE.value,
        reference_id=tournament_id,
        correlation_id=correlation_id,
    )
    await session.execute(
        update(CreditTransaction)
        .where(CreditTransaction.user_id == player)
        .values(created_at=NOW - timedelta(minutes=minutes_ago))
    )
    await session.commit()
    return player, correlation_id


class TestFindOrphanedEntryCharges:
    @pytest.mark.asyncio
    async def test_clean_ledger(self, session, test_settings):
        tournament = await make_tournament(session)
        player, _ = await _charge(session, tournament.id)
        await add_participant(session, tournament, player)

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert report.status == "ok"
        assert report.checked == 1
        assert report.orphaned == []

    @pytest.mark.asyncio
    async def test_refunded_charge_is_explained(self, session, test_settings):
        tournament = await make_tournament(session)
        player, correlation_id = await _charge(session, tournament.id)
        await SqlCreditLedger(session).refund(player, 20, reference_id=correlation_id)
        await session.commit()

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert report.status == "ok"

    @pytest.mark.asyncio
    async def test_charge_without_participant_or_refund(self, session, test_settings):
        tournament = await make_tournament(session, status=TournamentStatus.IN_PROGRESS)
        player, correlation_id = await _charge(session, tournament.id, amount=35)

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert report.status == "mismatch"
        [orphan] = report.orphaned
        assert orphan.player_id == player
        assert orphan.tournament_id == tournament.id
        assert orphan.amount == 35
        assert orphan.correlation_id == correlation_id
        assert orphan.tournament_status == TournamentStatus.IN_PROGRESS
        assert report.to_dict()["orphaned"][0]["tournament_status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_refund_for_another_join_does_not_count(self, session, test_settings):
        tournament = await make_tournament(session)
        player, _ = await _charge(session, tournament.id)
        await SqlCreditLedger(session).refund(player, 20, reference_id="join-other")
        await session.commit()

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert [o.player_id for o in report.orphaned] == [player]

    @pytest.mark.asyncio
    async def test_window_bounds(self, session, test_settings):
        tournament = await make_tournament(session)
        await _charge(session, tournament.id, minutes_ago=1)  # inside grace period
        await _charge(session, tournament.id, minutes_ago=60 * 72)  # before lookback
        in_window, _ = await _charge(session, tournament.id, minutes_ago=30)

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert report.checked == 1
        assert [o.player_id for o in report.orphaned] == [in_window]
        assert report.window_end == NOW - timedelta(minutes=test_settings.reconciliation_grace_minutes)

    @pytest.mark.asyncio
    async def test_tampered_charge(self, session, test_settings):
        tournament = await make_tournament(session)
        player, _ = await _charge(session, tournament.id)
        await add_participant(session, tournament, player)
        await session.execute(
            update(CreditTransaction)
            .where(CreditTransaction.user_id == player)
            .values(amount=-1)
        )
        await session.commit()
        session.expire_all()
        tx_id = await session.scalar(
            select(CreditTransaction.id).where(CreditTransaction.user_id == player)
        )

        report = await find_orphaned_entry_charges(session, now=NOW, settings=test_settings)

        assert report.status == "integrity_error"
        assert report.invalid_hashes == [tx_id]
