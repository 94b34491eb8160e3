import logging
from typing import Protocol

import requests

from artisan_booking.core.config import settings
from artisan_booking.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: str, event_type: str, payload: dict) -> None: ...


class LogNotifier:
    """Default notifier: delivery content is someone else's job, we only record the event."""

    def notify(self, user_id: str, event_type: str, payload: dict) -> None:
        logger.info("notify user=%s event=%s payload=%s", user_id, event_type, payload)


class WebhookNotifier:
    def __init__(self, url: str, timeout: int = 5):
        self.url = url
        self.timeout = timeout

    def notify(self, user_id: str, event_type: str, payload: dict) -> None:
        try:
            r = requests.post(
                self.url,
                json={"user_id": user_id, "event_type": event_type, "payload": payload},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"notification webhook unreachable: {e}")
        if r.status_code >= 400:
            raise ExternalServiceError(f"notification webhook error {r.status_code}: {r.text[:200]}")


def default_notifier() -> Notifier:
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return LogNotifier()
