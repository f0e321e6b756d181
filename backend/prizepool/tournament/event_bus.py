"""
Tournament Event Bus - push-based change notification.

상태 변경 시 이벤트를 발행하여 클라이언트 캐시 무효화:
1. Local handlers: 인메모리 구독자에게 즉시 디스패치
2. Redis Stream: 설정된 경우 XADD로 다른 인스턴스에 전달

Publishing never fails the operation that emitted the event: handler and
stream errors are logged and dropped.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import uuid4

import redis.asyncio as redis

from prizepool.logging_config import get_logger
from prizepool.utils.json_utils import json_dumps

logger = get_logger(__name__)


class TournamentEventType(str, Enum):
    TOURNAMENT_UPDATED = "tournament_updated"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    DISTRIBUTION_COMPLETED = "distribution_completed"


@dataclass
class TournamentEvent:
    """State change of a tournament."""

    event_type: TournamentEventType
    tournament_id: str
    data: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "user_id": self.user_id,
        }


EventHandler = Callable[[TournamentEvent], Awaitable[None]]


@dataclass
class Subscription:
    """Event subscription metadata."""

    subscription_id: str
    event_types: set[TournamentEventType]
    handler: EventHandler
    tournament_id: str | None = None  # None = all tournaments
    is_active: bool = True


class TournamentEventBus:
    """In-process fan-out with an optional Redis Stream sink."""

    STREAM_KEY = "prizepool:events"
    STREAM_MAX_LEN = 10000

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        stream_key: str | None = None,
        stream_max_len: int | None = None,
    ):
        self.redis = redis_client
        self.stream_key = stream_key or self.STREAM_KEY
        self.stream_max_len = stream_max_len or self.STREAM_MAX_LEN

        self._subscriptions: dict[str, Subscription] = {}
        self._handlers_by_type: dict[TournamentEventType, list[Subscription]] = (
            defaultdict(list)
        )

    def subscribe(
        self,
        event_types: set[TournamentEventType],
        handler: EventHandler,
        tournament_id: str | None = None,
    ) -> str:
        """Subscribe to tournament events.

        Returns:
            Subscription ID for unsubscribe
        """
        subscription_id = str(uuid4())
        subscription = Subscription(
            subscription_id=subscription_id,
            event_types=set(event_types),
            handler=handler,
            tournament_id=tournament_id,
        )
        self._subscriptions[subscription_id] = subscription
        for event_type in subscription.event_types:
            self._handlers_by_type[event_type].append(subscription)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove subscription."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if not subscription:
            return False

        subscription.is_active = False
        for event_type in subscription.event_types:
            self._handlers_by_type[event_type] = [
                s
                for s in self._handlers_by_type[event_type]
                if s.subscription_id != subscription_id
            ]
        return True

    async def publish(self, event: TournamentEvent) -> None:
        """Dispatch to local handlers and append to the Redis stream."""
        await self._dispatch_local(event)
        if self.redis is not None:
            await self._publish_to_stream(event)

    async def emit(
        self,
        event_type: TournamentEventType,
        tournament_id: str,
        user_id: str | None = None,
        **data: Any,
    ) -> None:
        await self.publish(
            TournamentEvent(
                event_type=event_type,
                tournament_id=tournament_id,
                user_id=user_id,
                data=data,
            )
        )

    async def _publish_to_stream(self, event: TournamentEvent) -> None:
        try:
            await self.redis.xadd(
                self.stream_key,
                {
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "tournament_id": event.tournament_id,
                    "timestamp": event.timestamp.isoformat(),
                    "data": json_dumps(event.data),
                    "user_id": event.user_id or "",
                },
                maxlen=self.stream_max_len,
                approximate=True,
            )
        except Exception as e:
            logger.warning(
                "event_stream_publish_failed",
                event_type=event.event_type.value,
                tournament_id=event.tournament_id,
                error=str(e),
            )

    async def _dispatch_local(self, event: TournamentEvent) -> None:
        tasks = []
        for subscription in self._handlers_by_type.get(event.event_type, []):
            if not subscription.is_active:
                continue
            if (
                subscription.tournament_id
                and subscription.tournament_id != event.tournament_id
            ):
                continue
            tasks.append(self._safe_handler_call(subscription.handler, event))

        if tasks:
            await asyncio.gather(*tasks)

    async def _safe_handler_call(
        self,
        handler: EventHandler,
        event: TournamentEvent,
    ) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.warning(
                "event_handler_failed",
                event_type=event.event_type.value,
                tournament_id=event.tournament_id,
                error=str(e),
            )


_event_bus: TournamentEventBus | None = None


def get_event_bus() -> TournamentEventBus:
    """Process-wide event bus (in-process only until init_event_bus is called)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = TournamentEventBus()
    return _event_bus


def init_event_bus(redis_client: redis.Redis | None) -> TournamentEventBus:
    global _event_bus
    from prizepool.config import get_settings

    settings = get_settings()
    _event_bus = TournamentEventBus(
        redis_client,
        stream_key=settings.event_stream_key,
        stream_max_len=settings.event_stream_maxlen,
    )
    return _event_bus
