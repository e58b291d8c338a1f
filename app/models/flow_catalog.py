from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class FlowCatalogVersion(Base):
    __tablename__ = "flow_catalogs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    # JSON structure: { "nodes": [{"flow_id", "prompt_text", "options": [...]}] }
    catalog_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default="{}"
    )

    # At most one row is published at a time
    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    published_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
