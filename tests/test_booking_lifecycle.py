import json
from datetime import timedelta

import pytest

from artisan_booking.core.errors import ConsistencyError, Expired, Forbidden, InvalidState, ValidationError
from artisan_booking.models.account import ArtisanAccount, CustomerAccount
from artisan_booking.models.escrow import Escrow
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.models.outbox_event import OutboxEvent
from artisan_booking.schemas.pricing import FullyCustom, ServiceOffering
from artisan_booking.services import booking_service, ledger, sweeper
from artisan_booking.services.audit_service import audit_trail
from artisan_booking.services.booking_rules import check_invariants


def _events(db, event_type):
    return db.query(OutboxEvent).filter(OutboxEvent.event_type == event_type).all()


def test_create_booking_sets_response_window(db, new_booking, now):
    b = new_booking()
    assert b.status == "pending"
    assert b.payment_status == "unpaid"
    assert b.estimated_price == 5000
    assert b.agreed_price is None
    assert b.expires_at == now + timedelta(seconds=120)
    assert b.booking_number.startswith("BK-")
    assert db.get(ArtisanAccount, "art-1").total_booking_requests == 1
    assert _events(db, "booking_created")[0].user_id == "art-1"


def test_customer_cannot_book_themselves(db, offering, now):
    with pytest.raises(ValidationError):
        booking_service.create_booking(db, "cust-1", "cust-1", offering, now=now)


def test_accept_within_window(db, new_booking, artisan, now):
    b = new_booking()
    b = booking_service.accept(db, b.id, artisan, now=now + timedelta(seconds=60))
    assert b.status == "accepted"
    assert (b.agreed_price, b.platform_fee, b.total_amount) == (5000, 250, 5250)
    assert b.accepted_at == now + timedelta(seconds=60)
    assert b.expires_at is None
    acc = db.get(ArtisanAccount, "art-1")
    assert acc.total_accepted_bookings == 1
    assert acc.acceptance_rate == 100
    assert _events(db, "booking_accepted")[0].user_id == "cust-1"


def test_only_the_artisan_can_accept(db, new_booking, customer, stranger, now):
    b = new_booking()
    for actor in (customer, stranger):
        with pytest.raises(Forbidden):
            booking_service.accept(db, b.id, actor, now=now)
    assert booking_service.get_booking(db, b.id).status == "pending"


def test_late_accept_declines_the_booking(db, new_booking, artisan, now):
    b = new_booking()
    with pytest.raises(Expired):
        booking_service.accept(db, b.id, artisan, now=now + timedelta(seconds=121))
    b = booking_service.get_booking(db, b.id)
    assert b.status == "declined"
    assert b.decline_reason == "expired"
    assert b.cancelled_by == "system"
    assert b.agreed_price is None


def test_deadline_is_judged_after_waiting_for_the_lock(db, new_booking, artisan, monkeypatch):
    b = new_booking()
    deadline = b.expires_at
    clock = {"now": deadline - timedelta(seconds=1)}
    real_lock = ledger.lock_booking

    def slow_lock(session, booking_id):
        # another writer holds the row until after the deadline
        clock["now"] = deadline + timedelta(seconds=5)
        return real_lock(session, booking_id)

    monkeypatch.setattr(booking_service, "utcnow", lambda: clock["now"])
    monkeypatch.setattr(ledger, "lock_booking", slow_lock)
    with pytest.raises(Expired):
        booking_service.accept(db, b.id, artisan)
    b = booking_service.get_booking(db, b.id)
    assert (b.status, b.decline_reason) == ("declined", "expired")


def test_accept_twice_is_invalid_state(db, accepted_booking, artisan, now):
    b = accepted_booking()
    with pytest.raises(InvalidState):
        booking_service.accept(db, b.id, artisan, now=now + timedelta(seconds=40))


def test_fully_custom_booking_needs_a_proposal(db, new_booking, artisan, now):
    b = new_booking(offer=ServiceOffering(pricing=FullyCustom()))
    assert b.estimated_price is None
    with pytest.raises(ValidationError):
        booking_service.accept(db, b.id, artisan, now=now)
    assert booking_service.get_booking(db, b.id).status == "pending"


def test_decline_requires_reason(db, new_booking, artisan, now):
    b = new_booking()
    with pytest.raises(ValidationError):
        booking_service.decline(db, b.id, artisan, "  ", now=now)
    b = booking_service.decline(db, b.id, artisan, "Fully booked this week", now=now)
    assert b.status == "declined"
    assert b.decline_reason == "Fully booked this week"
    assert b.cancelled_by == "artisan"
    assert db.get(ArtisanAccount, "art-1").acceptance_rate == 0


def test_scenario_pay_complete_release(db, completed_booking, customer, now):
    b = completed_booking()
    assert b.status == "completed"
    assert b.final_price == 5000
    assert b.work_duration == 2
    assert booking_service.can_review(b)

    b = booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=4))
    assert b.status == "payment_released"
    assert b.payment_status == "released"
    escrow = db.get(Escrow, b.escrow_id)
    assert escrow.status == "released"
    assert escrow.release_type == "manual"
    assert escrow.released_by == "cust-1"
    assert db.get(ArtisanAccount, "art-1").total_earnings == 5000
    assert db.get(ArtisanAccount, "art-1").total_jobs_completed == 1
    assert db.get(CustomerAccount, "cust-1").total_spent == 5250

    kinds = {(t.type, t.user_id, t.amount, t.status) for t in db.query(LedgerTransaction).all()}
    assert ("payment", "cust-1", 5250, "successful") in kinds
    assert ("payout", "art-1", 5000, "pending") in kinds
    assert ("fee", "platform", 250, "successful") in kinds


def test_release_is_idempotent(db, completed_booking, customer, now):
    b = completed_booking()
    booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=4))
    b = booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=5))
    assert b.status == "payment_released"
    assert db.get(ArtisanAccount, "art-1").total_earnings == 5000
    assert db.query(LedgerTransaction).filter(LedgerTransaction.type == "payout").count() == 1


def test_release_before_completion_is_rejected(db, paid_booking, customer, now):
    b, _ = paid_booking()
    with pytest.raises(InvalidState):
        booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=1))
    assert db.get(Escrow, b.escrow_id).status == "held"


def test_admin_release_is_recorded_as_admin(db, completed_booking, admin, now):
    b = completed_booking()
    booking_service.release_payment(db, b.id, admin, now=now + timedelta(hours=4))
    assert db.get(Escrow, b.escrow_id).release_type == "admin"


def test_artisan_cannot_release(db, completed_booking, artisan, now):
    b = completed_booking()
    with pytest.raises(Forbidden):
        booking_service.release_payment(db, b.id, artisan, now=now + timedelta(hours=4))


def test_complete_job_validation(db, paid_booking, artisan, now):
    b, _ = paid_booking()
    booking_service.start_job(db, b.id, artisan, now=now + timedelta(hours=1))
    with pytest.raises(ValidationError):
        booking_service.complete_job(db, b.id, artisan, "All done, thanks a lot!", [], now=now + timedelta(hours=2))
    with pytest.raises(ValidationError):
        booking_service.complete_job(db, b.id, artisan, "short", ["p.jpg"], now=now + timedelta(hours=2))
    assert booking_service.get_booking(db, b.id).status == "in_progress"


def test_start_requires_payment(db, accepted_booking, artisan, now):
    b = accepted_booking()
    with pytest.raises(InvalidState):
        booking_service.start_job(db, b.id, artisan, now=now + timedelta(minutes=5))


def test_cancel_unpaid_booking(db, accepted_booking, customer, now):
    b = accepted_booking()
    b = booking_service.cancel(db, b.id, customer, "Found someone closer", now=now + timedelta(minutes=5))
    assert b.status == "cancelled"
    assert b.payment_status == "unpaid"
    assert b.cancelled_by == "customer"
    assert b.escrow_id is None
    assert [e.user_id for e in _events(db, "booking_cancelled")] == ["art-1"]


def test_cancel_paid_booking_refunds_escrow(db, paid_booking, artisan, now):
    b, _ = paid_booking()
    b = booking_service.cancel(db, b.id, artisan, "Van broke down", now=now + timedelta(hours=1))
    assert b.status == "cancelled"
    assert b.payment_status == "refunded"
    escrow = db.get(Escrow, b.escrow_id)
    assert escrow.status == "refunded"
    assert escrow.refund_reason == "Van broke down"
    assert db.get(CustomerAccount, "cust-1").total_spent == 0
    refund = db.query(LedgerTransaction).filter(LedgerTransaction.type == "refund").one()
    assert (refund.user_id, refund.amount, refund.status) == ("cust-1", 5250, "pending")
    assert _events(db, "refund_issued")


def test_completed_booking_cannot_be_cancelled(db, completed_booking, customer, now):
    b = completed_booking()
    with pytest.raises(InvalidState):
        booking_service.cancel(db, b.id, customer, "Changed my mind", now=now + timedelta(hours=4))


def test_dispute_parks_escrow_out_of_auto_release(db, session_factory, completed_booking, customer, now):
    b = completed_booking()
    b = booking_service.open_dispute(db, b.id, customer, "Tap still leaks", now=now + timedelta(hours=4))
    assert b.status == "disputed"
    assert b.payment_status == "paid"
    assert db.get(Escrow, b.escrow_id).status == "disputed"

    result = sweeper.auto_release_escrows(session_factory, now=now + timedelta(days=5))
    assert result.succeeded == []
    assert db.get(ArtisanAccount, "art-1").total_earnings == 0
    with pytest.raises(InvalidState):
        booking_service.release_payment(db, b.id, customer, now=now + timedelta(days=5))

    trail = audit_trail(db, "booking", b.id)
    dispute = [a for a in trail if a.action == "booking.dispute"][0]
    assert json.loads(dispute.details_json)["reason"] == "Tap still leaks"


def test_invariant_violation_refuses_to_commit(db, new_booking, now):
    b = new_booking()
    with pytest.raises(ConsistencyError):
        with ledger.atomic(db):
            locked = ledger.lock_booking(db, b.id)
            locked.status = "confirmed"
    assert booking_service.get_booking(db, b.id).status == "pending"


def test_every_status_reached_satisfies_invariants(db, completed_booking, customer, now):
    b = completed_booking()
    check_invariants(b)
    b = booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=4))
    check_invariants(b)
    assert {a.action for a in audit_trail(db, "booking", b.id)} == {
        "booking.create", "booking.accept", "payment.successful",
        "booking.start", "booking.complete", "booking.release_payment",
    }
