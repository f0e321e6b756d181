"""Payout key registry tests."""

import pytest
from factories import new_id

from prizepool.models.payout_key import PayoutKeyType
from prizepool.services.payout_keys import PayoutKeyService, normalize_key
from prizepool.utils.errors import ValidationError


class TestNormalizeKey:
    @pytest.mark.parametrize(
        "raw,key_type,expected",
        [
            ("123.456.789-09", PayoutKeyType.CPF, "12345678909"),
            ("+55 (11) 99999-9999", PayoutKeyType.PHONE, "+5511999999999"),
            ("  Winner@Example.COM ", PayoutKeyType.EMAIL, "winner@example.com"),
            (
                "123e4567-e89b-12d3-a456-426614174000",
                PayoutKeyType.RANDOM,
                "123e4567-e89b-12d3-a456-426614174000",
            ),
        ],
    )
    def test_normalize(self, raw, key_type, expected):
        assert normalize_key(raw, key_type) == expected


class TestPayoutKeyService:
    @pytest.mark.asyncio
    async def test_set_and_get(self, session):
        user = new_id()
        service = PayoutKeyService(session)

        await service.set(user, "123.456.789-09", PayoutKeyType.CPF)

        key = await service.get(user)
        assert key.key == "12345678909"
        assert key.key_type == PayoutKeyType.CPF

    @pytest.mark.asyncio
    async def test_replace_keeps_one_key_per_user(self, session):
        user = new_id()
        service = PayoutKeyService(session)
        first = await service.set(user, "12345678909", PayoutKeyType.CPF)

        second = await service.set(user, "winner@example.com", PayoutKeyType.EMAIL)

        assert second.id == first.id
        assert (await service.get(user)).key_type == PayoutKeyType.EMAIL

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key,key_type",
        [
            ("1234", PayoutKeyType.CPF),
            ("not-an-email", PayoutKeyType.EMAIL),
            ("12", PayoutKeyType.PHONE),
            ("xyz", PayoutKeyType.RANDOM),
        ],
    )
    async def test_invalid_keys(self, session, key, key_type):
        with pytest.raises(ValidationError):
            await PayoutKeyService(session).set(new_id(), key, key_type)

    @pytest.mark.asyncio
    async def test_get_many(self, session):
        service = PayoutKeyService(session)
        users = [new_id() for _ in range(3)]
        for user in users[:2]:
            await service.set(user, f"{user[:8]}@example.com", PayoutKeyType.EMAIL)

        keys = await service.get_many(users)

        assert set(keys) == set(users[:2])
        assert await service.get_many([]) == {}
