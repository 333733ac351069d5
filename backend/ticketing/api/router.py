"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ticketing.api.routes import resources, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(resources.router)
api_router.include_router(bookings.router)
