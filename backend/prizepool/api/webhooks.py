"""Payment gateway webhook.

The gateway only tells us that a payment changed; the payment itself is
fetched back from the gateway before anything is recorded, so a forged or
replayed notification cannot confirm a deposit on its own.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError as PydanticValidationError

from prizepool.api.deps import DbSession, EventBus, get_payment_gateway
from prizepool.config import get_settings
from prizepool.logging_config import get_logger
from prizepool.schemas.common import BaseSchema
from prizepool.services.payment_gateway import PaymentGateway, verify_webhook_signature
from prizepool.tournament.escrow import EscrowDepositService
from prizepool.utils.errors import ErrorCode, NotFoundError, SignatureError, ValidationError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])

PAYMENT_EVENT_TYPES = {"payment", "payment.updated", "payment.created"}


class WebhookData(BaseSchema):
    id: str | int


class GatewayNotification(BaseSchema):
    type: str | None = None
    action: str | None = None
    data: WebhookData


@router.post("/gateway")
async def gateway_webhook(
    request: Request,
    db: DbSession,
    event_bus: EventBus,
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    x_signature: Annotated[str | None, Header()] = None,
    x_request_id: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Handle a payment notification.

    Unknown payments and non-payment topics are acknowledged and ignored so
    the gateway stops redelivering them.
    """
    try:
        notification = GatewayNotification.model_validate_json(await request.body())
    except PydanticValidationError as e:
        raise ValidationError("Malformed notification body") from e

    # 게이트웨이 data.id는 숫자로 오기도 함
    payment_id = str(notification.data.id)

    secret = get_settings().gateway_webhook_secret
    if secret and not verify_webhook_signature(secret, x_signature, x_request_id, payment_id):
        logger.warning("gateway_webhook_bad_signature", payment_id=payment_id)
        raise SignatureError("Invalid webhook signature")

    topic = notification.type or notification.action
    if topic not in PAYMENT_EVENT_TYPES:
        return {"received": True, "handled": False}

    payment = await gateway.get_payment(payment_id)
    escrow = EscrowDepositService(db, gateway, event_bus)

    try:
        if payment.is_approved:
            tournament = await escrow.confirm_deposit(
                payment.reference, paid_amount=payment.amount
            )
            logger.info(
                "gateway_payment_approved",
                payment_id=payment_id,
                tournament_id=tournament.id,
            )
        elif payment.is_failed:
            await escrow.fail_deposit(payment.reference, reason=payment.status)
        else:
            return {"received": True, "handled": False, "status": payment.status}
    except NotFoundError:
        logger.info("gateway_webhook_unknown_payment", payment_id=payment_id)
        return {"received": True, "handled": False}
    except ValidationError as e:
        if e.code != ErrorCode.AMOUNT_MISMATCH.value:
            raise
        # 금액 불일치는 재전송해도 같으므로 수신 확인만 하고 보류
        return {"received": True, "handled": False, "status": "amount_mismatch"}

    return {"received": True, "handled": True, "status": payment.status}
