"""Escrow settlement.

These functions work inside the caller's transaction: they add and modify rows
and flush, but never commit, so the booking sync and the money movement land
in the same ``ledger.atomic`` block.
"""
import logging
import uuid
from datetime import datetime, timedelta
from sqlalchemy import select
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.clock import utcnow
from artisan_booking.core.errors import InvalidEscrowState
from artisan_booking.models.escrow import Escrow
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.services import account_service

logger = logging.getLogger(__name__)

RELEASE_TYPES = ("manual", "auto", "admin")
PLATFORM_ACCOUNT = "platform"


def _ref(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


def _transaction(db: Session, escrow: Escrow, user_id: str, type_: str, amount: int, status: str, description: str, prefix: str, **meta) -> LedgerTransaction:
    tx = LedgerTransaction(
        id=str(uuid.uuid4()),
        user_id=user_id,
        booking_id=escrow.booking_id,
        payment_id=escrow.payment_id,
        type=type_,
        amount=amount,
        currency=settings.CURRENCY,
        status=status,
        description=description,
        reference=_ref(prefix),
        metadata_json={"escrow_id": escrow.id, **meta},
    )
    db.add(tx)
    return tx


def get_escrow_for_booking(db: Session, booking_id: str) -> Escrow | None:
    return db.execute(select(Escrow).where(Escrow.booking_id == booking_id)).scalar_one_or_none()


def create_escrow(db: Session, booking, payment, now: datetime | None = None) -> tuple[Escrow, bool]:
    """Hold the payment for the booking. Returns (escrow, created); an existing escrow is returned untouched."""
    existing = get_escrow_for_booking(db, booking.id)
    if existing:
        return existing, False

    now = now or utcnow()
    escrow = Escrow(
        id=str(uuid.uuid4()),
        booking_id=booking.id,
        payment_id=payment.id,
        customer_id=booking.customer_id,
        artisan_id=booking.artisan_id,
        amount=payment.total_amount,
        platform_fee=payment.platform_fee,
        artisan_amount=payment.total_amount - payment.platform_fee,
        status="held",
        held_at=now,
        auto_release_at=now + timedelta(hours=settings.AUTO_RELEASE_HOURS),
    )
    db.add(escrow)
    account_service.add_customer_spend(db, booking.customer_id, escrow.amount)
    _transaction(
        db, escrow, booking.customer_id, "payment", escrow.amount, "successful",
        f"Payment for booking {booking.booking_number}", "PAYIN",
    )
    db.flush()
    logger.info("escrow %s held for booking %s amount=%s", escrow.id, booking.id, escrow.amount)
    return escrow, True


def release_escrow(db: Session, escrow: Escrow, release_type: str, released_by: str | None = None, now: datetime | None = None) -> tuple[Escrow, bool]:
    """held -> released. Already released is a no-op (changed=False) so manual and auto release can race."""
    if release_type not in RELEASE_TYPES:
        raise ValueError(f"unknown release type {release_type}")
    if escrow.status == "released":
        return escrow, False
    if escrow.status != "held":
        raise InvalidEscrowState(f"escrow is {escrow.status}", escrow_id=escrow.id)

    now = now or utcnow()
    escrow.status = "released"
    escrow.released_at = now
    escrow.release_type = release_type
    escrow.released_by = released_by
    account_service.credit_earnings(db, escrow.artisan_id, escrow.artisan_amount)
    _transaction(
        db, escrow, escrow.artisan_id, "payout", escrow.artisan_amount, "pending",
        "Payout for completed booking", "PAYOUT", release_type=release_type,
    )
    if escrow.platform_fee:
        _transaction(
            db, escrow, PLATFORM_ACCOUNT, "fee", escrow.platform_fee, "successful",
            "Platform fee", "FEE",
        )
    db.flush()
    logger.info("escrow %s released (%s) artisan_amount=%s", escrow.id, release_type, escrow.artisan_amount)
    return escrow, True


def refund_escrow(db: Session, escrow: Escrow, reason: str, now: datetime | None = None) -> Escrow:
    if escrow.status != "held":
        raise InvalidEscrowState(f"escrow is {escrow.status}", escrow_id=escrow.id)

    now = now or utcnow()
    escrow.status = "refunded"
    escrow.refunded_at = now
    escrow.refund_reason = reason
    account_service.reverse_customer_spend(db, escrow.customer_id, escrow.amount)
    _transaction(
        db, escrow, escrow.customer_id, "refund", escrow.amount, "pending",
        f"Refund: {reason}", "REFUND", reason=reason,
    )
    db.flush()
    logger.info("escrow %s refunded amount=%s reason=%s", escrow.id, escrow.amount, reason)
    return escrow


def park_escrow(db: Session, escrow: Escrow) -> Escrow:
    """held -> disputed; the sweeper stops considering it for auto-release."""
    if escrow.status != "held":
        raise InvalidEscrowState(f"escrow is {escrow.status}", escrow_id=escrow.id)
    escrow.status = "disputed"
    db.flush()
    return escrow
