from fastapi import APIRouter

from app.api.ai import router as ai_router

api_router = APIRouter(prefix="/api")
api_router.include_router(ai_router)
