"""Organizer notifications.

Dispatch only: delivery happens in a Celery worker. Callers treat dispatch as
fire-and-forget and never let its failure reach the user.
"""

import asyncio
from typing import Protocol

from prizepool.logging_config import get_logger
from prizepool.models.tournament import Tournament

logger = get_logger(__name__)


class JoinNotifier(Protocol):
    async def participant_joined(self, tournament: Tournament, player_id: str) -> None:
        ...


class CeleryJoinNotifier:
    """Queue notify_organizer_of_join_task for the notification worker."""

    async def participant_joined(self, tournament: Tournament, player_id: str) -> None:
        from prizepool.tasks.notifications import notify_organizer_of_join_task

        await asyncio.to_thread(
            notify_organizer_of_join_task.apply_async,
            kwargs={
                "tournament_id": tournament.id,
                "organizer_id": tournament.organizer_id,
                "player_id": player_id,
                "title": tournament.title,
                "current_participants": tournament.current_participants,
                "max_participants": tournament.max_participants,
            },
            retry=False,
        )
        logger.debug(
            "join_notification_queued",
            tournament_id=tournament.id,
            player_id=player_id,
        )


class NullJoinNotifier:
    async def participant_joined(self, tournament: Tournament, player_id: str) -> None:
        return None
