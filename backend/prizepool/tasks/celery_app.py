"""Celery application for settlement retries, reconciliation and notifications.

Redis DB 1 is the broker and DB 2 the result backend; DB 0 stays with the
event stream. Worker logs go through the same structlog pipeline as the API.
"""

from celery import Celery
from celery.signals import setup_logging

from prizepool.config import get_settings
from prizepool.logging_config import configure_logging
from prizepool.tasks.schedules import CELERY_BEAT_SCHEDULE, CELERY_TASK_ROUTES

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def redis_db_url(redis_url: str, db: int) -> str:
    return f"{redis_url.rsplit('/', 1)[0]}/{db}"


_settings = get_settings()
_redis_url = _settings.redis_url or DEFAULT_REDIS_URL

celery_app = Celery(
    "prizepool_tasks",
    broker=redis_db_url(_redis_url, 1),
    backend=redis_db_url(_redis_url, 2),
    include=[
        "prizepool.tasks.notifications",
        "prizepool.tasks.reconciliation",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes=CELERY_TASK_ROUTES,
    beat_schedule=CELERY_BEAT_SCHEDULE,
    # 지급 재시도는 워커가 죽어도 다시 실행되어야 함
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_default_retry_delay=60,
    task_max_retries=3,
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.app_env == "production",
        app_env=settings.app_env,
    )
