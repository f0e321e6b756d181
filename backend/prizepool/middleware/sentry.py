"""Sentry error tracking integration."""

import logging
import os
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from prizepool.utils.errors import ExternalGatewayError, PrizePoolError


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """Initialize Sentry SDK.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    sentry_dsn = dsn or os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return False

    logging_integration = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        release=release or os.getenv("APP_VERSION", "1.0.0"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            logging_integration,
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=before_send,
        before_send_transaction=_before_send_transaction,
    )
    return True


def before_send(event: dict, hint: dict) -> dict | None:
    """Drop expected business errors. Gateway failures are still reported."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, PrizePoolError) and not isinstance(
            exc_value, ExternalGatewayError
        ):
            return None
    return event


def _before_send_transaction(event: dict, hint: dict) -> dict | None:
    transaction_name = event.get("transaction", "")
    if "/health" in transaction_name:
        return None
    return event


def capture_payout_error(
    error: Exception,
    tournament_id: str,
    player_id: str,
    amount: str,
    extra: dict[str, Any] | None = None,
) -> str | None:
    """Capture a failed prize payout with high priority."""
    with sentry_sdk.new_scope() as scope:
        scope.set_level("fatal")
        scope.set_user({"id": player_id})
        scope.set_tag("tournament_id", tournament_id)
        scope.set_tag("financial_error", "true")
        scope.set_extra("amount", amount)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)
