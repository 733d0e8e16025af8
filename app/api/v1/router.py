"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import activities, auth, bookings, webhooks

api_router = APIRouter()

# Authentication
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])

# Activities
api_router.include_router(activities.router, prefix="/activities", tags=["Activities"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks/payments", tags=["Webhooks"])
