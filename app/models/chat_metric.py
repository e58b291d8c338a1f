from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class MessageType(str, enum.Enum):
    user = "user"
    bot = "bot"


class ChatMetric(Base):
    """One logged chat turn. Rows are append-only."""

    __tablename__ = "chat_metrics"

    # Client-generated event id
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    user_role: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    session_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    message_type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, name="chat_message_type"),
        nullable=False,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    flow: Mapped[str] = mapped_column(String(64), nullable=False)
    selected_option: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # NULL means the turn carries no vote
    was_helpful: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    ai_generated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    tokens_used: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    response_time_ms: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    __table_args__ = (Index("ix_chat_metrics_timestamp", "timestamp"),)
