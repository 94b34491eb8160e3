import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.models.outbox_event import OutboxEvent
from artisan_booking.services.notifier import Notifier

logger = logging.getLogger(__name__)


def emit(db: Session, user_id: str, event_type: str, payload: dict | None = None) -> OutboxEvent:
    """Add a notification row to the caller's transaction. Nothing is sent until it commits."""
    ev = OutboxEvent(
        id=str(uuid.uuid4()),
        user_id=user_id,
        event_type=event_type,
        payload=payload or {},
        status="pending",
        attempts=0,
    )
    db.add(ev)
    return ev


def booking_payload(booking, **extra) -> dict:
    data = {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "status": booking.status,
        "payment_status": booking.payment_status,
    }
    data.update(extra)
    return data


def dispatch_pending(db: Session, notifier: Notifier, limit: int | None = None, max_attempts: int | None = None) -> dict:
    """Deliver pending outbox rows. Failures are logged and retried until max_attempts, then marked failed."""
    limit = limit or settings.OUTBOX_BATCH_SIZE
    max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
    pending = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, retrying, failed = 0, 0, 0
    for ev in pending:
        ev.attempts += 1
        try:
            notifier.notify(ev.user_id, ev.event_type, dict(ev.payload or {}))
        except Exception as e:
            ev.last_error = str(e)[:1000]
            if ev.attempts >= max_attempts:
                ev.status = "failed"
                failed += 1
                logger.warning("outbox event %s (%s) gave up after %s attempts: %s", ev.id, ev.event_type, ev.attempts, e)
            else:
                retrying += 1
                logger.warning("outbox event %s (%s) delivery failed, attempt %s: %s", ev.id, ev.event_type, ev.attempts, e)
            continue
        ev.status = "sent"
        ev.dispatched_at = datetime.now(timezone.utc)
        sent += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "retrying": retrying, "failed": failed}
