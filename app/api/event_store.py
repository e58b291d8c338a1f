from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session
from app.crud.chat_metric import create_chat_metric, list_chat_metrics, to_event
from app.schemas.metrics import ChatMetricEvent

router = APIRouter(prefix="/chat_metrics", tags=["event-store"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ChatMetricEvent)
async def append_chat_metric(
    payload: ChatMetricEvent,
    session: AsyncSession = Depends(get_db_session),
) -> ChatMetricEvent:
    row = await create_chat_metric(session=session, event=payload)
    return to_event(row)


@router.get("", response_model=list[ChatMetricEvent])
async def list_all_chat_metrics(
    session: AsyncSession = Depends(get_db_session),
) -> list[ChatMetricEvent]:
    rows = await list_chat_metrics(session=session)
    return [to_event(r) for r in rows]
