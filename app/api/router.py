from fastapi import APIRouter

from app.routers import admin, business_types, health, partner

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(business_types.router, tags=["Business Types"])
api_router.include_router(partner.router, prefix="/partner", tags=["Partner"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
