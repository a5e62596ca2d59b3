from fastapi import APIRouter

from biosync.api.v1.preferences import router as preferences_router
from biosync.api.v1.profile import router as profile_router
from biosync.api.v1.timeline import router as timeline_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(profile_router)
api_router.include_router(timeline_router)
api_router.include_router(preferences_router)
