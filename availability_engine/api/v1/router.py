"""
API v1 router setup
"""
from fastapi import APIRouter

from availability_engine.api.v1 import availability, bookings, calendars, schedules, waitlist, webhooks

api_v1_router = APIRouter()

api_v1_router.include_router(calendars.router, tags=["Calendars"])
api_v1_router.include_router(schedules.router, tags=["Schedules"])
api_v1_router.include_router(availability.router, tags=["Availability"])
api_v1_router.include_router(bookings.router, tags=["Bookings"])
api_v1_router.include_router(waitlist.router, tags=["Waitlist"])
api_v1_router.include_router(webhooks.router, tags=["Webhooks"])


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    return {
        "version": "1.0",
        "errors": {
            "400": "validation_error - fix the request",
            "404": "not_found",
            "409": "slot_unavailable - refresh availability and pick another slot",
            "422": "policy_violation - the calendar's booking rules forbid this",
            "503": "temporarily_unavailable - retry with backoff",
        }
    }
