"""Application routers for the analytics API."""

from fastapi import APIRouter

from restaurant_analytics.api.routes.analytics import router as analytics_router

router = APIRouter()
router.include_router(analytics_router)

__all__ = ["router"]
