from __future__ import annotations

import datetime as dt

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat_metric import ChatMetric
from app.schemas.metrics import ChatMetricEvent


async def create_chat_metric(
    *, session: AsyncSession, event: ChatMetricEvent
) -> ChatMetric:
    # A replayed POST returns the stored row.
    existing = await session.get(ChatMetric, event.id)
    if existing is not None:
        return existing

    obj = ChatMetric(
        id=event.id,
        user_id=event.user_id,
        user_name=event.user_name,
        user_role=event.user_role,
        timestamp=event.timestamp,
        session_id=event.session_id,
        message_type=event.message_type,
        message=event.message,
        flow=event.flow,
        selected_option=event.selected_option,
        was_helpful=event.was_helpful,
        ai_generated=event.ai_generated,
        tokens_used=event.tokens_used,
        response_time_ms=event.response_time_ms,
    )
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


async def list_chat_metrics(
    *,
    session: AsyncSession,
    start: dt.datetime | None = None,
    end: dt.datetime | None = None,
) -> list[ChatMetric]:
    stmt = select(ChatMetric)
    if start is not None:
        stmt = stmt.where(ChatMetric.timestamp >= start)
    if end is not None:
        stmt = stmt.where(ChatMetric.timestamp <= end)
    result = await session.execute(stmt.order_by(ChatMetric.timestamp.asc()))
    return list(result.scalars().all())


def to_event(row: ChatMetric) -> ChatMetricEvent:
    return ChatMetricEvent(
        id=row.id,
        user_id=row.user_id,
        user_name=row.user_name,
        user_role=row.user_role,
        timestamp=row.timestamp,
        session_id=row.session_id,
        message_type=row.message_type,
        message=row.message,
        flow=row.flow,
        selected_option=row.selected_option,
        was_helpful=row.was_helpful,
        ai_generated=row.ai_generated,
        tokens_used=row.tokens_used,
        response_time_ms=row.response_time_ms,
    )
