"""Mini-tournament API tests.

Drive the whole flow over HTTP: create, deposit, gateway confirmation,
registration, results and payout.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from factories import auth, give_credits, give_payout_key, make_tournament, new_id

from prizepool.api.deps import get_payout_adapter
from prizepool.models.tournament import TournamentStatus
from prizepool.services.payout_transfer import TransferResult

BASE = "/api/v1/mini-tournaments"

CREATE_BODY = {
    "title": "Friday Night Cup",
    "maxParticipants": 8,
    "entryFeeCredits": 10,
    "prizePoolAmount": "300.00",
    "prizeDistribution": [
        {"placement": 1, "percentage": "70"},
        {"placement": 2, "percentage": "30"},
    ],
}


async def _open_tournament(client, gateway, organizer: str) -> str:
    """Create a tournament and fund it through the webhook."""
    resp = await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))
    assert resp.status_code == 201
    tournament_id = resp.json()["id"]

    resp = await client.post(
        f"{BASE}/{tournament_id}/deposit",
        json={"amount": "300.00"},
        headers=auth(organizer),
    )
    assert resp.status_code == 201
    reference = resp.json()["gatewayReference"]

    gateway.statuses[reference] = "approved"
    resp = await client.post(
        "/api/v1/webhooks/gateway", json={"type": "payment", "data": {"id": reference}}
    )
    assert resp.json()["handled"] is True
    return tournament_id


async def _register(client, player: str, tournament_id: str):
    resp = await client.put(
        "/api/v1/payout-key",
        json={"key": f"{player[:8]}@Example.com", "keyType": "email"},
        headers=auth(player),
    )
    assert resp.status_code == 200
    return await client.post(f"{BASE}/{tournament_id}/join", headers=auth(player))


class TestFullFlow:
    @pytest.mark.asyncio
    async def test_create_fund_join_and_pay(self, client, session, gateway):
        organizer = new_id()
        players = [new_id() for _ in range(3)]
        for player in players:
            await give_credits(session, player, 50)

        tournament_id = await _open_tournament(client, gateway, organizer)
        assert gateway.charges[0]["amount"] == Decimal("300.00")

        resp = await client.get(f"{BASE}/{tournament_id}")
        assert resp.json()["status"] == "open"
        assert resp.json()["depositConfirmed"] is True

        for player in players:
            resp = await _register(client, player, tournament_id)
            assert resp.status_code == 200
            assert resp.json()["chargedCredits"] == 10
            assert resp.json()["alreadyRegistered"] is False

        resp = await client.get(f"{BASE}/{tournament_id}/participants")
        assert {p["playerId"] for p in resp.json()} == set(players)

        resp = await client.post(f"{BASE}/{tournament_id}/start", headers=auth(organizer))
        assert resp.json()["status"] == "in_progress"

        resp = await client.post(
            f"{BASE}/{tournament_id}/results",
            json={
                "results": [
                    {"playerId": players[0], "placement": 1},
                    {"playerId": players[1], "placement": 2},
                ]
            },
            headers=auth(organizer),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["allSuccessful"] is True
        assert body["partialFailure"] is None
        assert [Decimal(d["amount"]) for d in body["distributions"]] == [
            Decimal("210.00"),
            Decimal("90.00"),
        ]
        assert all(d["status"] == "confirmed" for d in body["distributions"])

        resp = await client.get(f"{BASE}/{tournament_id}")
        assert resp.json()["status"] == "completed"
        assert resp.json()["prizesDistributedAt"] is not None

        resp = await client.get(f"{BASE}/{tournament_id}/distributions")
        assert [d["placement"] for d in resp.json()] == [1, 2]

        resp = await client.get("/api/v1/credits/balance", headers=auth(players[2]))
        assert resp.json() == {"balance": 40}

    @pytest.mark.asyncio
    async def test_partial_payout_failure_and_retry(self, client, test_app, session, gateway):
        organizer = new_id()
        players = [new_id() for _ in range(2)]
        for player in players:
            await give_credits(session, player, 50)
        tournament_id = await _open_tournament(client, gateway, organizer)
        for player in players:
            await _register(client, player, tournament_id)
        await client.post(f"{BASE}/{tournament_id}/start", headers=auth(organizer))

        adapter = AsyncMock()
        adapter.transfer.side_effect = [
            TransferResult(success=True, transfer_id="tx-1"),
            TransferResult(success=False, error="Rail unavailable"),
            TransferResult(success=True, transfer_id="tx-2"),
        ]
        test_app.dependency_overrides[get_payout_adapter] = lambda: adapter

        resp = await client.post(
            f"{BASE}/{tournament_id}/distribute",
            json={
                "results": [
                    {"playerId": players[0], "placement": 1},
                    {"playerId": players[1], "placement": 2},
                ]
            },
            headers=auth(organizer),
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["allSuccessful"] is False
        assert body["partialFailure"]["failedPlayerIds"] == [players[1]]
        assert Decimal(body["partialFailure"]["failedAmount"]) == Decimal("90.00")

        resp = await client.get(f"{BASE}/{tournament_id}")
        assert resp.json()["status"] == "completed"
        assert resp.json()["prizesDistributedAt"] is None

        resp = await client.post(f"{BASE}/{tournament_id}/payouts/retry", headers=auth(organizer))
        assert resp.status_code == 200
        assert resp.json()["allSuccessful"] is True

        resp = await client.get(f"{BASE}/{tournament_id}")
        assert resp.json()["prizesDistributedAt"] is not None


class TestAdministration:
    @pytest.mark.asyncio
    async def test_requires_user_header(self, client):
        resp = await client.post(BASE, json=CREATE_BODY)

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"
        assert "traceId" in resp.json()

    @pytest.mark.asyncio
    async def test_create_returns_draft(self, client):
        organizer = new_id()

        resp = await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))

        body = resp.json()
        assert body["status"] == "draft"
        assert body["organizerId"] == organizer
        assert Decimal(body["prizePoolAmount"]) == Decimal("300")
        assert body["currentParticipants"] == 0
        assert resp.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_prize_table_must_sum_to_100(self, client):
        body = {
            **CREATE_BODY,
            "prizeDistribution": [{"placement": 1, "percentage": "90"}],
        }

        resp = await client.post(BASE, json=body, headers=auth(new_id()))

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_schema_validation(self, client):
        resp = await client.post(
            BASE, json={**CREATE_BODY, "maxParticipants": 1}, headers=auth(new_id())
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, client):
        resp = await client.get(f"{BASE}/{new_id()}")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_edit_draft(self, client):
        organizer = new_id()
        tournament_id = (await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))).json()["id"]

        resp = await client.patch(
            f"{BASE}/{tournament_id}",
            json={"title": "Saturday Cup", "entryFeeCredits": 25},
            headers=auth(organizer),
        )

        assert resp.status_code == 200
        assert resp.json()["title"] == "Saturday Cup"
        assert resp.json()["entryFeeCredits"] == 25

    @pytest.mark.asyncio
    async def test_delete_draft(self, client):
        organizer = new_id()
        tournament_id = (await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))).json()["id"]

        resp = await client.delete(f"{BASE}/{tournament_id}", headers=auth(organizer))
        assert resp.status_code == 204

        resp = await client.get(f"{BASE}/{tournament_id}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_cancel_twice(self, client, gateway):
        organizer = new_id()
        tournament_id = await _open_tournament(client, gateway, organizer)

        resp = await client.post(f"{BASE}/{tournament_id}/cancel", headers=auth(organizer))
        assert resp.json()["status"] == "cancelled"

        resp = await client.post(f"{BASE}/{tournament_id}/cancel", headers=auth(organizer))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_start_by_stranger(self, client, gateway):
        tournament_id = await _open_tournament(client, gateway, new_id())

        resp = await client.post(f"{BASE}/{tournament_id}/start", headers=auth(new_id()))

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_payout_estimate(self, client):
        organizer = new_id()
        tournament_id = (await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))).json()["id"]

        resp = await client.get(f"{BASE}/{tournament_id}/payouts/estimate")

        assert [(e["placement"], Decimal(e["amount"])) for e in resp.json()] == [
            (1, Decimal("210.00")),
            (2, Decimal("90.00")),
        ]


class TestDepositEndpoints:
    @pytest.mark.asyncio
    async def test_amount_must_match_pool(self, client):
        organizer = new_id()
        tournament_id = (await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))).json()["id"]

        resp = await client.post(
            f"{BASE}/{tournament_id}/deposit", json={"amount": "299.99"}, headers=auth(organizer)
        )

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "AMOUNT_MISMATCH"

    @pytest.mark.asyncio
    async def test_only_organizer_funds(self, client):
        organizer = new_id()
        tournament_id = (await client.post(BASE, json=CREATE_BODY, headers=auth(organizer))).json()["id"]

        resp = await client.post(
            f"{BASE}/{tournament_id}/deposit", json={"amount": "300.00"}, headers=auth(new_id())
        )

        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_deposit_history_is_organizer_only(self, client, gateway):
        organizer = new_id()
        tournament_id = await _open_tournament(client, gateway, organizer)

        resp = await client.get(f"{BASE}/{tournament_id}/deposits", headers=auth(organizer))
        assert [d["status"] for d in resp.json()] == ["confirmed"]
        assert resp.json()[0]["paidAt"] is not None

        resp = await client.get(f"{BASE}/{tournament_id}/deposits", headers=auth(new_id()))
        assert resp.status_code == 403


class TestRegistrationEndpoints:
    @pytest.mark.asyncio
    async def test_full_tournament(self, client, session):
        tournament = await make_tournament(session, max_participants=2, current_participants=2)
        player = new_id()
        await give_payout_key(session, player)

        resp = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "TOURNAMENT_FULL"

    @pytest.mark.asyncio
    async def test_insufficient_credits(self, client, session):
        tournament = await make_tournament(session, entry_fee=100)
        player = new_id()
        await give_credits(session, player, 5)
        await give_payout_key(session, player)

        resp = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))

        assert resp.status_code == 402
        assert resp.json()["error"]["code"] == "INSUFFICIENT_FUNDS"

    @pytest.mark.asyncio
    async def test_payout_key_required(self, client, session):
        tournament = await make_tournament(session)

        resp = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(new_id()))

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "PAYOUT_KEY_MISSING"

    @pytest.mark.asyncio
    async def test_join_twice_then_leave(self, client, session):
        tournament = await make_tournament(session, entry_fee=10)
        player = new_id()
        await give_credits(session, player, 30)
        await give_payout_key(session, player)

        first = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))
        second = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))
        assert second.json()["alreadyRegistered"] is True
        assert second.json()["participantId"] == first.json()["participantId"]

        resp = await client.post(f"{BASE}/{tournament.id}/leave", headers=auth(player))
        assert resp.status_code == 204

        resp = await client.delete(f"{BASE}/{tournament.id}/join", headers=auth(player))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_REGISTERED"

        resp = await client.get("/api/v1/credits/balance", headers=auth(player))
        assert resp.json()["balance"] == 20

    @pytest.mark.asyncio
    async def test_join_in_progress_tournament(self, client, session):
        tournament = await make_tournament(session, status=TournamentStatus.IN_PROGRESS)
        player = new_id()
        await give_payout_key(session, player)

        resp = await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))

        assert resp.status_code == 409


class TestPayoutKeyEndpoints:
    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        resp = await client.get("/api/v1/payout-key", headers=auth(new_id()))

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "PAYOUT_KEY_MISSING"

    @pytest.mark.asyncio
    async def test_set_and_replace(self, client):
        user = new_id()

        resp = await client.put(
            "/api/v1/payout-key",
            json={"key": "123.456.789-09", "keyType": "cpf"},
            headers=auth(user),
        )
        assert resp.json()["key"] == "12345678909"

        await client.put(
            "/api/v1/payout-key",
            json={"key": "Winner@Example.com", "keyType": "email"},
            headers=auth(user),
        )
        resp = await client.get("/api/v1/payout-key", headers=auth(user))
        assert resp.json()["key"] == "winner@example.com"
        assert resp.json()["keyType"] == "email"

    @pytest.mark.asyncio
    async def test_invalid_key(self, client):
        resp = await client.put(
            "/api/v1/payout-key",
            json={"key": "12345", "keyType": "cpf"},
            headers=auth(new_id()),
        )
        assert resp.status_code == 422


class TestCreditEndpoints:
    @pytest.mark.asyncio
    async def test_transaction_history(self, client, session):
        tournament = await make_tournament(session, entry_fee=10)
        player = new_id()
        await give_credits(session, player, 30)
        await give_payout_key(session, player)
        await client.post(f"{BASE}/{tournament.id}/join", headers=auth(player))

        resp = await client.get("/api/v1/credits/transactions", headers=auth(player))

        assert resp.status_code == 200
        [tx] = resp.json()
        assert tx["txType"] == "mini_tournament_entry"
        assert tx["amount"] == -10
        assert tx["balanceAfter"] == 20
        assert tx["referenceId"] == tournament.id

        resp = await client.get(
            "/api/v1/credits/transactions",
            params={"txType": "purchase"},
            headers=auth(player),
        )
        assert resp.json() == []


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        resp = await client.get("/health/live")
        assert resp.json() == {"status": "alive"}
