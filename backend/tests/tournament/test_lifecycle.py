"""Tests for the tournament state machine."""

import pytest
from factories import make_tournament

from prizepool.models.tournament import TournamentStatus
from prizepool.tournament.lifecycle import (
    TRANSITIONS,
    can_transition,
    cancellable_states,
    is_deletable,
    is_terminal,
    load_tournament,
    transition,
    validate_transition,
)
from prizepool.utils.errors import ErrorCode, NotFoundError, StateError

S = TournamentStatus


class TestTransitionMap:
    """Allowed and forbidden transitions."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.DRAFT, S.PENDING_DEPOSIT),
            (S.PENDING_DEPOSIT, S.OPEN),
            (S.OPEN, S.IN_PROGRESS),
            (S.IN_PROGRESS, S.AWAITING_RESULT),
            (S.AWAITING_RESULT, S.COMPLETED),
        ],
    )
    def test_forward_path(self, current, target):
        assert can_transition(current, target)
        validate_transition(current, target)

    @pytest.mark.parametrize("current", list(cancellable_states()))
    def test_every_non_terminal_state_can_cancel(self, current):
        assert can_transition(current, S.CANCELLED)

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.DRAFT, S.OPEN),
            (S.PENDING_DEPOSIT, S.IN_PROGRESS),
            (S.OPEN, S.COMPLETED),
            (S.OPEN, S.DRAFT),
            (S.AWAITING_RESULT, S.OPEN),
        ],
    )
    def test_skipping_or_going_back_is_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(StateError) as exc_info:
            validate_transition(current, target)
        assert exc_info.value.code == ErrorCode.INVALID_TRANSITION.value

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
    def test_terminal_states_have_no_exit(self, terminal):
        assert is_terminal(terminal)
        assert all(not can_transition(terminal, target) for target in S)

    def test_every_status_is_mapped(self):
        assert set(TRANSITIONS) == set(S)

    def test_only_unfunded_states_are_deletable(self):
        assert {s for s in S if is_deletable(s)} == {S.DRAFT, S.PENDING_DEPOSIT}


class TestConditionalTransition:
    """transition() only applies if the row still has the status we read."""

    @pytest.mark.asyncio
    async def test_transition_updates_row(self, session):
        tournament = await make_tournament(session, status=S.OPEN)

        await transition(session, tournament, S.IN_PROGRESS)
        await session.commit()

        reloaded = await load_tournament(session, tournament.id)
        assert reloaded.status == S.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_stale_status_loses(self, session_factory):
        async with session_factory() as setup:
            tournament = await make_tournament(setup, status=S.OPEN)

        async with session_factory() as first:
            stale = await load_tournament(first, tournament.id)
            await first.commit()

            async with session_factory() as second:
                winner = await load_tournament(second, tournament.id)
                await transition(second, winner, S.CANCELLED)
                await second.commit()

            with pytest.raises(StateError) as exc_info:
                await transition(first, stale, S.IN_PROGRESS)
            assert exc_info.value.code == ErrorCode.CONCURRENT_MODIFICATION.value
            await first.rollback()

        async with session_factory() as check:
            assert (await load_tournament(check, tournament.id)).status == S.CANCELLED

    @pytest.mark.asyncio
    async def test_invalid_transition_writes_nothing(self, session):
        tournament = await make_tournament(session, status=S.DRAFT, deposit_confirmed=False)

        with pytest.raises(StateError):
            await transition(session, tournament, S.OPEN)

        assert (await load_tournament(session, tournament.id)).status == S.DRAFT

    @pytest.mark.asyncio
    async def test_load_unknown_tournament(self, session):
        with pytest.raises(NotFoundError):
            await load_tournament(session, "missing")
