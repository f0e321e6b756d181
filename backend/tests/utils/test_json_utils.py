"""JSON utility tests."""

from datetime import datetime, timezone
from decimal import Decimal

from prizepool.models.tournament import TournamentStatus
from prizepool.utils.json_utils import ORJSONResponse, json_dumps, json_loads


def test_decimal_stays_exact():
    assert json_loads(json_dumps({"amount": Decimal("0.10")})) == {"amount": "0.10"}


def test_enums_and_datetimes():
    payload = {
        "status": TournamentStatus.OPEN,
        "at": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    }
    assert json_loads(json_dumps(payload)) == {
        "status": "open",
        "at": "2026-01-02T03:04:05Z",
    }


def test_response_render():
    response = ORJSONResponse({"amount": Decimal("12.50")})
    assert response.body == b'{"amount":"12.50"}'
