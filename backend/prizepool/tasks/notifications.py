"""Organizer notification tasks."""

import asyncio
import logging

import httpx

from prizepool.config import get_settings
from prizepool.tasks.celery_app import celery_app
from prizepool.utils.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="prizepool.tasks.notifications.notify_organizer_of_join_task",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
)
def notify_organizer_of_join_task(
    self,
    tournament_id: str,
    organizer_id: str,
    player_id: str,
    title: str,
    current_participants: int,
    max_participants: int,
):
    """Tell the organizer a player joined their tournament."""
    payload = {
        "type": "mini_tournament.participant_joined",
        "tournament_id": tournament_id,
        "organizer_id": organizer_id,
        "player_id": player_id,
        "title": title,
        "current_participants": current_participants,
        "max_participants": max_participants,
    }
    return asyncio.run(deliver_notification(payload))


async def deliver_notification(
    payload: dict,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """POST the payload to the notification webhook.

    Returns:
        False when no webhook is configured
    """
    settings = get_settings()
    if not settings.notification_webhook_url:
        logger.debug(f"Notification webhook not configured, dropping {payload['type']}")
        return False

    async with AsyncHttpClient(
        timeout=settings.notification_timeout_seconds,
        max_retries=2,
        transport=transport,
    ) as http:
        await http.post_json(settings.notification_webhook_url, payload)

    logger.info(
        f"Notification sent: {payload['type']} tournament={payload['tournament_id']}"
    )
    return True
