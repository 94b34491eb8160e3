import logging
from fastapi import APIRouter, Depends, HTTPException, Request
import json
from sqlalchemy.orm import Session

from artisan_booking.api.deps import get_db, get_actor, get_cache, get_gateway
from artisan_booking.core.config import settings
from artisan_booking.core.security import Actor
from artisan_booking.schemas.payments import PaymentInitRequest, PaymentInitOut, PaymentOut
from artisan_booking.services import payment_service
from artisan_booking.services.booking_views import invalidate_booking
from artisan_booking.services.cache import Cache
from artisan_booking.services.paystack_client import PaymentGateway, verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/initialize", response_model=PaymentInitOut)
def initialize_payment(body: PaymentInitRequest, actor: Actor = Depends(get_actor), db: Session = Depends(get_db),
                       gateway: PaymentGateway = Depends(get_gateway)):
    payment, init = payment_service.initialize_payment(db, gateway, body.booking_id, actor, body.email)
    return PaymentInitOut(
        reference=payment.reference,
        authorization_url=init.authorization_url,
        access_code=init.access_code,
        total_amount=payment.total_amount,
        currency=payment.currency,
    )


@router.get("/verify/{reference}", response_model=PaymentOut)
def verify_payment(reference: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db),
                   gateway: PaymentGateway = Depends(get_gateway), cache: Cache = Depends(get_cache)):
    payment = payment_service.verify_payment(db, gateway, reference, actor)
    invalidate_booking(cache, payment.booking_id)
    return PaymentOut.model_validate(payment)


@router.post("/webhook")
async def paystack_webhook(request: Request, db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get("x-paystack-signature"), settings.PAYSTACK_WEBHOOK_SECRET):
        raise HTTPException(status_code=400, detail="Invalid signature")
    try:
        event = json.loads(body.decode("utf-8") or "{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    logger.info("webhook received: %s", event.get("event"))
    result = payment_service.handle_webhook_event(db, event)
    payment = payment_service.get_payment_by_reference(db, (event.get("data") or {}).get("reference", ""))
    if payment:
        invalidate_booking(cache, payment.booking_id)
    return {"success": True, **result}
