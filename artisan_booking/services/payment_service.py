"""Payment initialisation and reconciliation.

The webhook, the customer's verify call and the re-verification sweep all end in
``reconcile_charge``; it is idempotent per payment reference.
"""
import logging
import uuid
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.clock import utcnow
from artisan_booking.core.errors import NotFound, Forbidden, InvalidState, ConsistencyError, Conflict, ExternalServiceError
from artisan_booking.core.security import Actor
from artisan_booking.models.payment import Payment
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.services import ledger, escrow_service
from artisan_booking.services.audit_service import log_audit
from artisan_booking.services.booking_rules import require_customer, require_status, set_once
from artisan_booking.services.fees import price_terms
from artisan_booking.services.outbox_service import emit, booking_payload
from artisan_booking.services.paystack_client import PaymentGateway, ChargeInit

logger = logging.getLogger(__name__)

LATE_PAYMENT_REFUND_REASON = "Booking cancelled before payment settled"


def make_payment_reference(now: datetime) -> str:
    return f"PAY-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:8].upper()}"


def get_payment_by_reference(db: Session, reference: str) -> Payment | None:
    return db.execute(select(Payment).where(Payment.reference == reference)).scalar_one_or_none()


def _lock_payment(db: Session, reference: str) -> Payment:
    p = db.execute(
        select(Payment).where(Payment.reference == reference).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not p:
        raise NotFound("payment not found", reference=reference)
    return p


def initialize_payment(db: Session, gateway: PaymentGateway, booking_id: str, actor: Actor, email: str,
                       now: datetime | None = None) -> tuple[Payment, ChargeInit]:
    """Reserve a Payment row (committed, pending) and only then ask the gateway for a checkout URL.

    A gateway failure leaves the row pending; a webhook or the re-verify sweep can still settle it.
    """
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        require_customer(b, actor)
        require_status(b, "accepted")
        if b.payment_status != "unpaid":
            raise InvalidState("booking is already paid", booking_id=b.id)

        terms = price_terms(b.agreed_price)
        if terms["total_amount"] != b.total_amount or terms["platform_fee"] != b.platform_fee:
            raise ConsistencyError("booking amounts drifted from agreed price", booking_id=b.id)

        existing = db.execute(
            select(Payment).where(Payment.booking_id == b.id, Payment.status == "pending").order_by(Payment.created_at.desc())
        ).scalars().first()
        if existing and (existing.gateway_response or {}).get("authorization_url"):
            return existing, ChargeInit(
                authorization_url=existing.gateway_response["authorization_url"],
                reference=existing.reference,
                access_code=existing.gateway_response.get("access_code", ""),
            )

        payment = existing or Payment(
            id=str(uuid.uuid4()),
            booking_id=b.id,
            customer_id=b.customer_id,
            artisan_id=b.artisan_id,
            provider="paystack",
            reference=make_payment_reference(now),
            amount=terms["agreed_price"],
            platform_fee=terms["platform_fee"],
            artisan_amount=terms["agreed_price"],
            total_amount=terms["total_amount"],
            currency=settings.CURRENCY,
            status="pending",
            created_at=now,
        )
        db.add(payment)
        log_audit(db, actor.user_id, "payment.initialize", "payment", payment.id, {"booking_id": b.id, "total": payment.total_amount})

    metadata = {"booking_id": b.id, "booking_number": b.booking_number, "payment_id": payment.id}
    try:
        init = gateway.initialize_charge(email, payment.total_amount, payment.reference, metadata)
    except ExternalServiceError:
        logger.warning("gateway initialise failed for payment %s, left pending", payment.reference)
        raise

    payment.gateway_reference = init.reference
    payment.gateway_response = {"authorization_url": init.authorization_url, "access_code": init.access_code}
    db.commit()
    return payment, init


def _queue_refund(db: Session, payment: Payment, description: str, **meta) -> LedgerTransaction | None:
    """Record money owed back to the customer for a charge that cannot settle a booking."""
    reference = f"REFUND-{payment.reference}"
    if db.execute(select(LedgerTransaction.id).where(LedgerTransaction.reference == reference)).first():
        return None
    tx = LedgerTransaction(
        id=str(uuid.uuid4()),
        user_id=payment.customer_id,
        booking_id=payment.booking_id,
        payment_id=payment.id,
        type="refund",
        amount=payment.total_amount,
        currency=payment.currency,
        status="pending",
        description=description,
        reference=reference,
        metadata_json=meta,
    )
    db.add(tx)
    return tx


def _settle(db: Session, payment: Payment, succeeded: bool, raw: dict, now: datetime) -> Payment:
    if payment.status == "successful":
        return payment
    if payment.status == "failed":
        # the row stays failed; the money that still arrived is owed back
        if succeeded and _queue_refund(db, payment, "Refund of payment settled after it was marked failed", gateway_response=raw):
            emit(db, payment.customer_id, "refund_issued",
                 {"booking_id": payment.booking_id, "reference": payment.reference, "amount": payment.total_amount})
            log_audit(db, "gateway", "payment.late_success", "payment", payment.id, {"booking_id": payment.booking_id})
            logger.warning("success reported for failed payment %s, refund queued", payment.reference)
        return payment

    if not succeeded:
        payment.status = "failed"
        payment.failed_at = now
        payment.failure_reason = str(raw.get("gateway_response") or raw.get("message") or "declined")[:500]
        payment.gateway_response = raw
        emit(db, payment.customer_id, "payment_failed", {"booking_id": payment.booking_id, "reference": payment.reference})
        log_audit(db, "gateway", "payment.failed", "payment", payment.id, {"reason": payment.failure_reason})
        return payment

    payment.status = "successful"
    payment.paid_at = now
    payment.gateway_response = raw

    b = ledger.lock_booking(db, payment.booking_id)
    if b.status == "accepted" and b.payment_status == "unpaid":
        escrow, _ = escrow_service.create_escrow(db, b, payment, now)
        b.status = "confirmed"
        b.payment_status = "paid"
        b.payment_id = payment.id
        b.escrow_id = escrow.id
        set_once(b, "confirmed_at", now)
        emit(db, b.customer_id, "payment_confirmed", booking_payload(b, amount=payment.total_amount))
        emit(db, b.artisan_id, "booking_confirmed", booking_payload(b))
        log_audit(db, "gateway", "payment.successful", "booking", b.id, {"payment_id": payment.id, "escrow_id": escrow.id})
        logger.info("booking %s confirmed by payment %s", b.id, payment.reference)
    elif b.escrow_id is not None and b.payment_id != payment.id:
        # a second attempt went through after the booking was already paid
        _queue_refund(db, payment, "Refund of duplicate payment", duplicate_of=b.payment_id)
        log_audit(db, "gateway", "payment.duplicate", "payment", payment.id, {"booking_id": b.id})
        logger.warning("duplicate payment %s for booking %s, refund queued", payment.reference, b.id)
    elif b.status == "cancelled" and b.payment_status == "unpaid":
        escrow, _ = escrow_service.create_escrow(db, b, payment, now)
        escrow_service.refund_escrow(db, escrow, LATE_PAYMENT_REFUND_REASON, now)
        b.payment_status = "refunded"
        b.payment_id = payment.id
        b.escrow_id = escrow.id
        emit(db, b.customer_id, "refund_issued", booking_payload(b, amount=escrow.amount))
        log_audit(db, "gateway", "payment.late_refund", "booking", b.id, {"payment_id": payment.id})
        logger.warning("payment %s arrived for cancelled booking %s, refunded", payment.reference, b.id)
    else:
        raise ConsistencyError(
            f"successful payment for a {b.status}/{b.payment_status} booking",
            booking_id=b.id, reference=payment.reference,
        )
    return payment


def reconcile_charge(db: Session, reference: str, succeeded: bool, raw: dict | None = None,
                     now: datetime | None = None) -> Payment:
    """Apply a gateway result to Payment, Booking and Escrow. Safe to call any number of times."""
    now = now or utcnow()
    raw = raw or {}
    for attempt in (1, 2):
        try:
            with ledger.atomic(db):
                payment = _lock_payment(db, reference)
                _settle(db, payment, succeeded, raw, now)
            return payment
        except Conflict:
            # lost the race against another reconciliation of the same reference; re-read once
            if attempt == 2:
                raise
            logger.info("reconcile %s raced, retrying", reference)


def verify_payment(db: Session, gateway: PaymentGateway, reference: str, actor: Actor | None = None,
                   now: datetime | None = None) -> Payment:
    payment = get_payment_by_reference(db, reference)
    if not payment:
        raise NotFound("payment not found", reference=reference)
    if actor is not None and actor.role != "admin" and actor.user_id != payment.customer_id:
        raise Forbidden("only the paying customer can verify this payment", reference=reference)
    if payment.status != "pending":
        return payment
    result = gateway.verify_charge(reference)
    if result.status == "pending":
        return payment
    return reconcile_charge(db, reference, result.succeeded, result.raw, now)


def record_transfer_result(db: Session, reference: str, succeeded: bool, raw: dict | None = None) -> LedgerTransaction | None:
    tx = db.execute(
        select(LedgerTransaction).where(LedgerTransaction.reference == reference, LedgerTransaction.type == "payout")
    ).scalar_one_or_none()
    if not tx:
        logger.info("transfer result for unknown reference %s ignored", reference)
        return None
    if tx.status in ("successful", "failed"):
        return tx
    tx.status = "successful" if succeeded else "failed"
    tx.metadata_json = {**(tx.metadata_json or {}), "transfer": raw or {}}
    log_audit(db, "gateway", f"payout.{tx.status}", "ledger_transaction", tx.id, {"reference": reference})
    if not succeeded:
        emit(db, tx.user_id, "payout_failed", {"reference": reference, "amount": tx.amount})
    db.commit()
    return tx


def handle_webhook_event(db: Session, event: dict, now: datetime | None = None) -> dict:
    """Dispatch a verified Paystack webhook event."""
    kind = event.get("event", "")
    data = event.get("data") or {}
    reference = data.get("reference", "")
    if kind in ("charge.success", "charge.failed"):
        if not get_payment_by_reference(db, reference):
            logger.info("webhook %s for unknown reference %s ignored", kind, reference)
            return {"handled": False, "reason": "unknown_reference"}
        payment = reconcile_charge(db, reference, kind == "charge.success", data, now)
        return {"handled": True, "payment_status": payment.status}
    if kind in ("transfer.success", "transfer.failed", "transfer.reversed"):
        tx = record_transfer_result(db, reference, kind == "transfer.success", data)
        return {"handled": tx is not None}
    logger.info("unhandled webhook event %s", kind)
    return {"handled": False, "reason": "unhandled_event"}
