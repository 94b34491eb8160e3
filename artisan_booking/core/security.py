from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from artisan_booking.core.config import settings

ALGO = "HS256"


def create_access_token(subject: str, role: str, expires_minutes: int = 30) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "role": role, "type": "access", "exp": exp}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])


ROLES = ("customer", "artisan", "admin", "system")


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller. The core only checks that it is a party to the booking."""
    user_id: str
    role: str


def actor_from_token(token: str) -> Actor:
    payload = decode_token(token)
    role = payload.get("role")
    if not payload.get("sub") or role not in ROLES:
        raise JWTError("token missing subject or role")
    return Actor(user_id=str(payload["sub"]), role=role)
