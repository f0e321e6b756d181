"""Celery Beat schedule configuration.

Tasks:
- Every 15 minutes: retry failed prize payouts
- Hourly: entry-fee reconciliation report
"""

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "retry-failed-payouts": {
        "task": "prizepool.tasks.reconciliation.retry_failed_payouts_task",
        "schedule": crontab(minute="*/15"),
        "options": {"queue": "settlement"},
    },
    "reconcile-entry-charges-hourly": {
        "task": "prizepool.tasks.reconciliation.reconcile_entry_charges_task",
        "schedule": crontab(minute=10),  # Every hour at :10
        "options": {"queue": "settlement"},
    },
}


CELERY_TASK_ROUTES = {
    "prizepool.tasks.reconciliation.*": {"queue": "settlement"},
    "prizepool.tasks.notifications.*": {"queue": "notification"},
}
