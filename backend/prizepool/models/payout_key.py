"""Player payout destinations (PIX keys)."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from prizepool.models.base import Base, TimestampMixin, UUIDMixin


class PayoutKeyType(str, Enum):
    CPF = "cpf"
    PHONE = "phone"
    EMAIL = "email"
    RANDOM = "random"


class PayoutKey(Base, UUIDMixin, TimestampMixin):
    """A player's registered instant-payment key. One per player."""

    __tablename__ = "user_payout_keys"

    user_id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, index=True
    )
    key: Mapped[str] = mapped_column(String(140), nullable=False)
    key_type: Mapped[PayoutKeyType] = mapped_column(
        SQLEnum(PayoutKeyType), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PayoutKey {self.key_type.value}:{self.key[:4]}...>"
