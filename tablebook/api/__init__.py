"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import admin, availability, orders, profile, reservations

api_router = APIRouter()

api_router.include_router(availability.router, prefix="/availability", tags=["availability"])
api_router.include_router(reservations.router, prefix="/reservations", tags=["reservations"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
