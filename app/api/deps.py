from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import verify_admin_password
from app.db.session import get_session
from app.services.assistant import ChatAssistant
from app.services.event_store import EventStore
from app.services.flow_catalog import CatalogStore
from app.services.interaction_logger import LogDiagnostics


async def get_db_session(session: AsyncSession = Depends(get_session)) -> AsyncSession:
    return session


def get_assistant(request: Request) -> ChatAssistant:
    return request.app.state.assistant


def get_catalog_store(request: Request) -> CatalogStore:
    return request.app.state.catalog_store


def get_event_store(request: Request) -> EventStore:
    return request.app.state.event_store


def get_log_diagnostics(request: Request) -> LogDiagnostics:
    return request.app.state.log_diagnostics


def require_admin_password(admin_password: str) -> None:
    if not verify_admin_password(admin_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin_password"
        )
