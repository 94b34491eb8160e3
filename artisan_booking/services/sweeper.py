"""Periodic sweeps.

Each candidate is handled in its own session and transaction by the same
transition functions the manual actions use. Items whose state changed since
the candidate query are reported as skipped; exceptions are collected per item
and never stop the sweep.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.clock import utcnow
from artisan_booking.models.booking import Booking
from artisan_booking.models.escrow import Escrow
from artisan_booking.models.negotiation import Negotiation
from artisan_booking.models.payment import Payment
from artisan_booking.models.account import ArtisanAccount
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.services import booking_service, payment_service
from artisan_booking.services.audit_service import log_audit
from artisan_booking.services.booking_views import invalidate_booking
from artisan_booking.services.cache import Cache
from artisan_booking.services.paystack_client import PaymentGateway

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass
class SweepResult:
    name: str
    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "sweep": self.name,
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "failures": self.failed,
        }


def _candidates(session_factory: SessionFactory, stmt) -> list[str]:
    db = session_factory()
    try:
        return list(db.execute(stmt).scalars().all())
    finally:
        db.close()


def _run(name: str, session_factory: SessionFactory, ids: list[str], fn) -> SweepResult:
    result = SweepResult(name)
    for item_id in ids:
        db = session_factory()
        try:
            done = fn(db, item_id)
        except Exception as e:
            logger.warning("%s: item %s failed: %s", name, item_id, e, exc_info=True)
            result.failed[item_id] = f"{type(e).__name__}: {e}"
            continue
        finally:
            db.close()
        (result.succeeded if done else result.skipped).append(item_id)
    if ids:
        logger.info("%s: %s ok, %s skipped, %s failed", name, len(result.succeeded), len(result.skipped), len(result.failed))
    return result


def _invalidating(cache: Cache | None, fn, booking_id_of=lambda db, item_id: item_id):
    def _wrapped(db: Session, item_id: str) -> bool:
        done = fn(db, item_id)
        if done and cache is not None:
            invalidate_booking(cache, booking_id_of(db, item_id))
        return done
    return _wrapped


def expire_pending_bookings(session_factory: SessionFactory, now: datetime | None = None, cache: Cache | None = None) -> SweepResult:
    now = now or utcnow()
    ids = _candidates(session_factory, select(Booking.id).where(
        Booking.status == "pending", Booking.expires_at.isnot(None), Booking.expires_at < now,
    ))
    return _run("expire_pending_bookings", session_factory, ids,
                _invalidating(cache, lambda db, bid: booking_service.expire_pending_booking(db, bid, now)))


def expire_negotiations(session_factory: SessionFactory, now: datetime | None = None, cache: Cache | None = None) -> SweepResult:
    now = now or utcnow()
    ids = _candidates(session_factory, select(Negotiation.booking_id).where(
        Negotiation.status == "active", Negotiation.expires_at < now,
    ))
    return _run("expire_negotiations", session_factory, ids,
                _invalidating(cache, lambda db, bid: booking_service.expire_negotiation_booking(db, bid, now)))


def auto_release_escrows(session_factory: SessionFactory, now: datetime | None = None, cache: Cache | None = None) -> SweepResult:
    now = now or utcnow()
    ids = _candidates(session_factory, select(Escrow.id).where(
        Escrow.status == "held", Escrow.auto_release_at.isnot(None), Escrow.auto_release_at <= now,
    ))
    return _run("auto_release_escrows", session_factory, ids,
                _invalidating(
                    cache,
                    lambda db, eid: booking_service.auto_release_booking(db, eid, now),
                    booking_id_of=lambda db, eid: db.get(Escrow, eid).booking_id,
                ))


def reverify_pending_payments(session_factory: SessionFactory, gateway: PaymentGateway,
                              older_than: timedelta | None = None, now: datetime | None = None,
                              cache: Cache | None = None) -> SweepResult:
    """Backstop for lost webhooks: ask the gateway about payments stuck in pending."""
    now = now or utcnow()
    older_than = older_than if older_than is not None else timedelta(minutes=settings.PAYMENT_REVERIFY_AFTER_MINUTES)
    refs = _candidates(session_factory, select(Payment.reference).where(
        Payment.status == "pending", Payment.created_at <= now - older_than,
    ))

    def _verify(db: Session, reference: str) -> bool:
        payment = payment_service.verify_payment(db, gateway, reference, now=now)
        return payment.status != "pending"

    return _run("reverify_pending_payments", session_factory, refs, _invalidating(
        cache, _verify,
        booking_id_of=lambda db, ref: payment_service.get_payment_by_reference(db, ref).booking_id,
    ))


def process_pending_payouts(session_factory: SessionFactory, gateway: PaymentGateway) -> SweepResult:
    """Send pending payout transactions to the gateway. Earnings were credited at release, not here."""
    ids = _candidates(session_factory, select(LedgerTransaction.id).where(
        LedgerTransaction.type == "payout", LedgerTransaction.status == "pending",
    ).order_by(LedgerTransaction.created_at.asc()))

    def _payout(db: Session, tx_id: str) -> bool:
        tx = db.execute(
            select(LedgerTransaction).where(LedgerTransaction.id == tx_id).with_for_update()
        ).scalar_one_or_none()
        if tx is None or tx.status != "pending" or (tx.metadata_json or {}).get("transfer_reference"):
            return False
        acc = db.get(ArtisanAccount, tx.user_id)
        if not acc or not acc.payout_recipient_code:
            # stays pending until the artisan has payout details
            return False
        data = gateway.initiate_transfer(acc.payout_recipient_code, tx.amount, tx.reference, tx.description or "Artisan payout")
        status = (data or {}).get("status", "")
        meta = {**(tx.metadata_json or {}), "transfer_reference": tx.reference, "transfer_status": status}
        if status == "success":
            tx.status = "successful"
        elif status == "failed":
            tx.status = "failed"
        tx.metadata_json = meta
        log_audit(db, "system", "payout.initiated", "ledger_transaction", tx.id, {"status": status, "amount": tx.amount})
        db.commit()
        return True

    return _run("process_pending_payouts", session_factory, ids, _payout)
