from fastapi import APIRouter

from listings.api.routes import admin, health, listings

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(listings.router, prefix="/listings", tags=["public"])
api_router.include_router(admin.router, prefix="/admin", tags=["maintenance"])
