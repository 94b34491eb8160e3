from datetime import timedelta

from artisan_booking.models.account import ArtisanAccount
from artisan_booking.models.escrow import Escrow
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.models.payment import Payment
from artisan_booking.services import booking_service, payment_service, sweeper
from artisan_booking.services.cache import MemoryCache
from artisan_booking.services.booking_views import get_booking_summary


def test_expire_pending_bookings(db, session_factory, new_booking, now):
    b = new_booking()
    assert sweeper.expire_pending_bookings(session_factory, now=now + timedelta(seconds=60)).succeeded == []

    result = sweeper.expire_pending_bookings(session_factory, now=now + timedelta(seconds=121))
    assert result.succeeded == [b.id]
    db.expire_all()
    b = booking_service.get_booking(db, b.id)
    assert b.status == "declined"
    assert b.decline_reason == "expired"
    assert b.cancellation_reason == "Auto-declined - no response within the response window"
    assert b.escrow_id is None
    assert db.query(Escrow).count() == 0

    rerun = sweeper.expire_pending_bookings(session_factory, now=now + timedelta(seconds=300))
    assert rerun.as_dict()["succeeded"] == 0


def test_expire_invalidates_cached_summary(db, session_factory, new_booking, now):
    cache = MemoryCache()
    b = new_booking()
    assert get_booking_summary(db, cache, b.id)["status"] == "pending"
    sweeper.expire_pending_bookings(session_factory, now=now + timedelta(minutes=5), cache=cache)
    db.expire_all()
    assert get_booking_summary(db, cache, b.id)["status"] == "declined"


def test_auto_release_after_window(db, session_factory, completed_booking, now):
    b = completed_booking()
    escrow = db.get(Escrow, b.escrow_id)
    due = escrow.auto_release_at

    assert sweeper.auto_release_escrows(session_factory, now=due - timedelta(minutes=1)).succeeded == []
    result = sweeper.auto_release_escrows(session_factory, now=due)
    assert result.succeeded == [escrow.id]

    db.expire_all()
    b = booking_service.get_booking(db, b.id)
    escrow = db.get(Escrow, b.escrow_id)
    assert (b.status, b.payment_status) == ("payment_released", "released")
    assert escrow.status == "released"
    assert escrow.release_type == "auto"
    assert escrow.released_by is None
    assert db.get(ArtisanAccount, "art-1").total_earnings == 5000

    rerun = sweeper.auto_release_escrows(session_factory, now=due + timedelta(hours=1))
    assert rerun.succeeded == [] and rerun.failed == {}
    db.expire_all()
    assert db.get(ArtisanAccount, "art-1").total_earnings == 5000


def test_auto_release_of_job_never_completed(db, session_factory, paid_booking, now):
    b, _ = paid_booking()
    due = db.get(Escrow, b.escrow_id).auto_release_at
    sweeper.auto_release_escrows(session_factory, now=due + timedelta(minutes=1))
    db.expire_all()
    b = booking_service.get_booking(db, b.id)
    assert b.status == "payment_released"
    assert b.final_price == b.agreed_price


def test_manual_release_after_auto_release_is_a_no_op(db, session_factory, completed_booking, customer, now):
    b = completed_booking()
    due = db.get(Escrow, b.escrow_id).auto_release_at
    sweeper.auto_release_escrows(session_factory, now=due)
    db.expire_all()
    b = booking_service.release_payment(db, b.id, customer, now=due + timedelta(minutes=1))
    assert b.status == "payment_released"
    assert db.query(LedgerTransaction).filter(LedgerTransaction.type == "payout").count() == 1


def test_reverify_pending_payments(db, session_factory, accepted_booking, customer, gateway, now):
    b = accepted_booking()
    payment, _ = payment_service.initialize_payment(db, gateway, b.id, customer, "c@example.com", now=now)
    later = payment.created_at + timedelta(minutes=20)

    still_pending = sweeper.reverify_pending_payments(session_factory, gateway, now=later)
    assert still_pending.skipped == [payment.reference]

    gateway.results[payment.reference] = "success"
    done = sweeper.reverify_pending_payments(session_factory, gateway, now=later)
    assert done.succeeded == [payment.reference]
    db.expire_all()
    assert db.query(Payment).one().status == "successful"
    assert booking_service.get_booking(db, b.id).status == "confirmed"


def test_process_pending_payouts(db, session_factory, completed_booking, customer, gateway, now):
    b = completed_booking()
    booking_service.release_payment(db, b.id, customer, now=now + timedelta(hours=4))

    without_details = sweeper.process_pending_payouts(session_factory, gateway)
    assert without_details.skipped and gateway.transfers == []

    db.get(ArtisanAccount, "art-1").payout_recipient_code = "RCP_123"
    db.commit()
    gateway.transfer_status = "success"
    result = sweeper.process_pending_payouts(session_factory, gateway)
    assert len(result.succeeded) == 1
    assert gateway.transfers[0]["amount"] == 5000
    db.expire_all()
    payout = db.query(LedgerTransaction).filter(LedgerTransaction.type == "payout").one()
    assert payout.status == "successful"
    assert payout.metadata_json["transfer_status"] == "success"

    assert sweeper.process_pending_payouts(session_factory, gateway).succeeded == []
    assert len(gateway.transfers) == 1


def test_one_failure_does_not_stop_the_sweep(db, session_factory, new_booking, now, monkeypatch):
    first = new_booking()
    second = new_booking()
    real = booking_service.expire_pending_booking

    def flaky(session, booking_id, at=None):
        if booking_id == first.id:
            raise RuntimeError("boom")
        return real(session, booking_id, at)

    monkeypatch.setattr(booking_service, "expire_pending_booking", flaky)
    result = sweeper.expire_pending_bookings(session_factory, now=now + timedelta(minutes=5))
    assert set(result.failed) == {first.id}
    assert result.succeeded == [second.id]
