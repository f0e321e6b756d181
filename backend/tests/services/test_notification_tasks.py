"""Organizer notification delivery tests."""

import json

import httpx
import pytest

from prizepool.models.tournament import Tournament
from prizepool.services.notifications import CeleryJoinNotifier
from prizepool.tasks import notifications

PAYLOAD = {
    "type": "mini_tournament.participant_joined",
    "tournament_id": "t-1",
    "organizer_id": "o-1",
    "player_id": "p-1",
    "title": "Friday Night Cup",
    "current_participants": 3,
    "max_participants": 8,
}


@pytest.fixture
def webhook_settings(test_settings, monkeypatch):
    settings = test_settings.model_copy(
        update={"notification_webhook_url": "https://hooks.example.com/prizepool"}
    )
    monkeypatch.setattr(notifications, "get_settings", lambda: settings)
    return settings


class TestDeliverNotification:
    @pytest.mark.asyncio
    async def test_posts_payload(self, webhook_settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        delivered = await notifications.deliver_notification(
            PAYLOAD, transport=httpx.MockTransport(handler)
        )

        assert delivered is True
        [request] = seen
        assert str(request.url) == "https://hooks.example.com/prizepool"
        assert json.loads(request.content) == PAYLOAD

    @pytest.mark.asyncio
    async def test_without_webhook(self, test_settings, monkeypatch):
        monkeypatch.setattr(notifications, "get_settings", lambda: test_settings)

        assert await notifications.deliver_notification(PAYLOAD) is False

    @pytest.mark.asyncio
    async def test_http_error_propagates_for_task_retry(self, webhook_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        with pytest.raises(httpx.HTTPStatusError):
            await notifications.deliver_notification(
                PAYLOAD, transport=httpx.MockTransport(handler)
            )


class TestCeleryJoinNotifier:
    @pytest.mark.asyncio
    async def test_queues_task(self, monkeypatch):
        queued = []
        monkeypatch.setattr(
            notifications.notify_organizer_of_join_task,
            "apply_async",
            lambda **kwargs: queued.append(kwargs),
        )
        tournament = Tournament(
            id="t-1",
            organizer_id="o-1",
            title="Friday Night Cup",
            current_participants=3,
            max_participants=8,
        )

        await CeleryJoinNotifier().participant_joined(tournament, "p-1")

        [call] = queued
        assert call["kwargs"] == {
            "tournament_id": "t-1",
            "organizer_id": "o-1",
            "player_id": "p-1",
            "title": "Friday Night Cup",
            "current_participants": 3,
            "max_participants": 8,
        }
        assert call["retry"] is False
