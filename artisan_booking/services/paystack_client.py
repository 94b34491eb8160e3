import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

from artisan_booking.core.config import settings
from artisan_booking.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class ChargeInit:
    authorization_url: str
    reference: str
    access_code: str = ""


@dataclass
class ChargeVerification:
    status: str  # success, failed, pending
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaymentGateway(Protocol):
    def initialize_charge(self, email: str, amount: int, reference: str, metadata: dict | None = None) -> ChargeInit: ...

    def verify_charge(self, reference: str) -> ChargeVerification: ...

    def initiate_transfer(self, recipient_code: str, amount: int, reference: str, reason: str) -> dict: ...


@dataclass
class PaystackConfig:
    secret_key: str
    base_url: str = "https://api.paystack.co"
    currency: str = "NGN"
    callback_url: str = ""
    timeout: int = 20


def to_subunit(amount: int) -> int:
    # Paystack amounts are in kobo
    return int(round(amount * 100))


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA512 of the raw request body, hex encoded (header x-paystack-signature)."""
    if not signature or not secret:
        return False
    computed = hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(computed, signature)


class PaystackClient:
    def __init__(self, cfg: PaystackConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self.cfg.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.request(method=method.upper(), url=url, json=payload, headers=headers, timeout=self.cfg.timeout)
        except requests.Timeout:
            raise ExternalServiceError("payment gateway timed out", path=path)
        except requests.RequestException as e:
            raise ExternalServiceError(f"payment gateway unreachable: {e}", path=path)
        try:
            data = r.json()
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400 or not data.get("status", False):
            logger.warning("paystack %s %s failed: %s %s", method, path, r.status_code, data.get("message"))
            raise ExternalServiceError(f"Paystack error {r.status_code}: {data.get('message', '')}", path=path)
        return data.get("data") or {}

    def initialize_charge(self, email: str, amount: int, reference: str, metadata: dict | None = None) -> ChargeInit:
        payload = {
            "email": email,
            "amount": to_subunit(amount),
            "reference": reference,
            "currency": self.cfg.currency,
            "metadata": metadata or {},
        }
        if self.cfg.callback_url:
            payload["callback_url"] = self.cfg.callback_url
        data = self.request("POST", "/transaction/initialize", payload)
        return ChargeInit(
            authorization_url=data.get("authorization_url", ""),
            reference=data.get("reference", reference),
            access_code=data.get("access_code", ""),
        )

    def verify_charge(self, reference: str) -> ChargeVerification:
        data = self.request("GET", f"/transaction/verify/{reference}")
        status = data.get("status", "")
        # abandoned means the checkout page was left open, the customer can still pay
        if status in ("failed", "reversed"):
            status = "failed"
        elif status != "success":
            status = "pending"
        return ChargeVerification(status=status, raw=data)

    def initiate_transfer(self, recipient_code: str, amount: int, reference: str, reason: str) -> dict:
        return self.request("POST", "/transfer", {
            "source": "balance",
            "recipient": recipient_code,
            "amount": to_subunit(amount),
            "reference": reference,
            "reason": reason,
        })


def paystack_client() -> PaystackClient:
    return PaystackClient(PaystackConfig(
        secret_key=settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        currency=settings.CURRENCY,
        callback_url=settings.PAYSTACK_CALLBACK_URL,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    ))
