from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from app.db.session import async_session_maker

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    # Basic DB connectivity check
    async with async_session_maker() as session:
        await session.execute(text("SELECT 1"))

    store = getattr(request.app.state, "catalog_store", None)
    return {
        "status": "ok",
        "catalog_version": store.catalog.version if store is not None else None,
    }
