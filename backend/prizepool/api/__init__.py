"""API routers."""

from prizepool.api.credits import router as credits_router
from prizepool.api.payout_keys import router as payout_keys_router
from prizepool.api.tournaments import router as tournaments_router
from prizepool.api.webhooks import router as webhooks_router

__all__ = [
    "credits_router",
    "payout_keys_router",
    "tournaments_router",
    "webhooks_router",
]
