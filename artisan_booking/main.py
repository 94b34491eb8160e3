import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from artisan_booking.core.config import settings
from artisan_booking.core.errors import BookingError, ConsistencyError
from artisan_booking.core.logging_config import configure_logging
from artisan_booking.api.v1.api import api_router

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = [
    "http://127.0.0.1:3000", "http://localhost:3000",
    "http://127.0.0.1:5173", "http://localhost:5173",
]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
def booking_error_handler(request: Request, exc: BookingError):
    if isinstance(exc, ConsistencyError):
        logger.critical("consistency error on %s %s: %s %s", request.method, request.url.path, exc.message, exc.details)
        return JSONResponse(status_code=exc.status_code, content={"detail": "internal consistency error", "code": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
