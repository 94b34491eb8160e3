from artisan_booking.tasks.celery_app import celery
from artisan_booking.tasks import worker_jobs

@celery.task(name="artisan_booking.tasks.jobs.expire_bookings")
def expire_bookings():
    return worker_jobs.expire_bookings()

@celery.task(name="artisan_booking.tasks.jobs.auto_release_escrows")
def auto_release_escrows():
    return worker_jobs.auto_release_escrows()


@celery.task(name="artisan_booking.tasks.jobs.dispatch_outbox")
def dispatch_outbox(limit: int = 50):
    return worker_jobs.dispatch_outbox(limit=limit)


@celery.task(name="artisan_booking.tasks.jobs.reverify_payments")
def reverify_payments():
    return worker_jobs.reverify_payments()


@celery.task(name="artisan_booking.tasks.jobs.process_payouts")
def process_payouts():
    return worker_jobs.process_payouts()
