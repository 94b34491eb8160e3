from datetime import timedelta

from artisan_booking.services.cache import MemoryCache
from artisan_booking.tasks import jobs, worker_jobs  # noqa: F401
from artisan_booking.tasks.celery_app import celery

from fakes import RecordingNotifier


def test_beat_schedule_points_at_registered_tasks():
    for entry in celery.conf.beat_schedule.values():
        assert entry["task"] in celery.tasks


def test_expire_bookings_job(monkeypatch, session_factory, new_booking, now):
    new_booking()
    monkeypatch.setattr(worker_jobs, "SessionLocal", session_factory)
    monkeypatch.setattr(worker_jobs, "default_cache", MemoryCache)
    monkeypatch.setattr(worker_jobs, "utcnow", lambda: now + timedelta(minutes=10))

    result = worker_jobs.expire_bookings()
    assert result["bookings"]["succeeded"] == 1
    assert result["negotiations"]["succeeded"] == 0
    assert result["bookings"]["failed"] == 0


def test_dispatch_outbox_job(monkeypatch, session_factory, accepted_booking):
    accepted_booking()
    notifier = RecordingNotifier()
    monkeypatch.setattr(worker_jobs, "SessionLocal", session_factory)
    monkeypatch.setattr(worker_jobs, "default_notifier", lambda: notifier)

    assert worker_jobs.dispatch_outbox(limit=10)["sent"] == 2
    assert len(notifier.sent) == 2
