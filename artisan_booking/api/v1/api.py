from fastapi import APIRouter
from artisan_booking.api.v1.routes.bookings import router as bookings_router
from artisan_booking.api.v1.routes.payments import router as payments_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
