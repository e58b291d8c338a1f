from __future__ import annotations

from fastapi import APIRouter

from app.api.v1.routers import catalog, chat, metrics

api_router = APIRouter(prefix="/v1")
api_router.include_router(chat.router)
api_router.include_router(catalog.router)
api_router.include_router(metrics.router)
