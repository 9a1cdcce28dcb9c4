# app/api/v1/api.py
from fastapi import APIRouter

from app.api.routes import trackings

api_router = APIRouter()

api_router.include_router(
    trackings.router,
    prefix="/trackings",
    tags=["trackings"],
)
