from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from artisan_booking.core.clock import utcnow
from artisan_booking.db.session import SessionLocal
from artisan_booking.services import sweeper
from artisan_booking.services.cache import default_cache
from artisan_booking.services.notifier import default_notifier
from artisan_booking.services.outbox_service import dispatch_pending
from artisan_booking.services.paystack_client import paystack_client


def expire_bookings():
    """Pending bookings past their response window, then negotiations past theirs."""
    now = utcnow()
    cache = default_cache()
    try:
        bookings = sweeper.expire_pending_bookings(SessionLocal, now, cache=cache)
        negotiations = sweeper.expire_negotiations(SessionLocal, now, cache=cache)
    except ProgrammingError:
        # DB not migrated yet; don't crash the worker.
        return {"skipped": True, "reason": "missing_tables"}
    return {"bookings": bookings.as_dict(), "negotiations": negotiations.as_dict()}


def auto_release_escrows():
    try:
        return sweeper.auto_release_escrows(SessionLocal, utcnow(), cache=default_cache()).as_dict()
    except ProgrammingError:
        return {"skipped": True, "reason": "missing_tables"}


def dispatch_outbox(limit: int = 50) -> dict:
    """Deliver committed notification rows. Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return dispatch_pending(db, default_notifier(), limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def reverify_payments():
    try:
        return sweeper.reverify_pending_payments(SessionLocal, paystack_client(), cache=default_cache()).as_dict()
    except ProgrammingError:
        return {"skipped": True, "reason": "missing_tables"}


def process_payouts():
    try:
        return sweeper.process_pending_payouts(SessionLocal, paystack_client()).as_dict()
    except ProgrammingError:
        return {"skipped": True, "reason": "missing_tables"}
