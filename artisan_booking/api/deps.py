from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from artisan_booking.db.session import get_db  # noqa: F401
from artisan_booking.core.security import Actor, actor_from_token
from artisan_booking.services.cache import Cache, default_cache
from artisan_booking.services.paystack_client import PaymentGateway, paystack_client

bearer = HTTPBearer(auto_error=False)

_cache: Cache | None = None


def get_actor(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Actor:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return actor_from_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def require_roles(*roles: str):
    def _guard(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor
    return _guard


def get_cache() -> Cache:
    global _cache
    if _cache is None:
        _cache = default_cache()
    return _cache


def get_gateway() -> PaymentGateway:
    return paystack_client()
