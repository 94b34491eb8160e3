import logging
import time

import psycopg2

from artisan_booking.core.config import settings

logger = logging.getLogger("wait_for_db")


def wait_for_db(url: str, timeout_s: int = 60) -> None:
    """Block until PostgreSQL accepts connections on ``url``."""
    dsn = url.replace("postgresql+psycopg2://", "postgresql://")
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            psycopg2.connect(dsn).close()
            logger.info("database is ready")
            return
        except psycopg2.OperationalError:
            if time.monotonic() > deadline:
                logger.error("timed out after %ss waiting for the database", timeout_s)
                raise
            time.sleep(1)


if __name__ == "__main__":
    wait_for_db(settings.DATABASE_URL)
