"""structlog setup shared by the API process and the celery workers.

JSON lines in production, colored console output elsewhere. Payout
destinations (PIX keys, payer emails) are masked before any renderer
sees them.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# 로그에 원문이 남으면 안 되는 필드
MASKED_FIELDS = frozenset({"payout_destination", "payout_key", "payer_email"})

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "celery": logging.INFO,
}


def mask_value(value: str, visible: int = 3) -> str:
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)


def mask_payout_destinations(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for field in MASKED_FIELDS.intersection(event_dict):
        value = event_dict[field]
        if isinstance(value, str):
            event_dict[field] = mask_value(value)
    return event_dict


def _shared_processors(use_json: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_payout_destinations,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if use_json:
        processors.append(structlog.processors.format_exc_info)
    else:
        processors.append(structlog.dev.set_exc_info)
    return processors


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        json_logs: Force JSON output outside production
        app_env: Application environment; production always logs JSON
    """
    use_json = json_logs or app_env == "production"
    shared = _shared_processors(use_json)

    renderer: Processor
    if use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Usage: logger.info("entry_fee_charged", tournament_id="t1", amount=10)"""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind request-scoped values (request_id, user_id) for every later log call."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
