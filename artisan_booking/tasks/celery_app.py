from celery import Celery
from celery.schedules import crontab
from celery.signals import after_setup_logger
from artisan_booking.core.config import settings
from artisan_booking.core.logging_config import configure_logging

celery = Celery(
    "artisan_booking",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["artisan_booking.tasks.jobs"],
)

celery.conf.timezone = "Africa/Lagos"


@after_setup_logger.connect
def on_setup_logger(logger, **kwargs):
    configure_logging(settings.LOG_LEVEL)


celery.conf.beat_schedule = {
    "expire-bookings-every-minute": {
        "task": "artisan_booking.tasks.jobs.expire_bookings",
        "schedule": 60.0,
    },
    "auto-release-escrows-hourly": {
        "task": "artisan_booking.tasks.jobs.auto_release_escrows",
        "schedule": 3600.0,
    },
    "dispatch-outbox-every-30-seconds": {
        "task": "artisan_booking.tasks.jobs.dispatch_outbox",
        "schedule": 30.0,
        "kwargs": {"limit": settings.OUTBOX_BATCH_SIZE},
    },
    "reverify-payments-every-10-minutes": {
        "task": "artisan_booking.tasks.jobs.reverify_payments",
        "schedule": 600.0,
    },
    "process-payouts-daily": {
        "task": "artisan_booking.tasks.jobs.process_payouts",
        "schedule": crontab(hour=2, minute=0),
    },
}
