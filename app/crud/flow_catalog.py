from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.flow_catalog import FlowCatalogVersion


async def create_catalog_draft(
    *, session: AsyncSession, catalog_data: dict[str, Any]
) -> FlowCatalogVersion:
    latest = await session.execute(select(func.max(FlowCatalogVersion.version)))
    next_version = (latest.scalar() or 0) + 1

    row = FlowCatalogVersion(
        version=next_version,
        catalog_data=catalog_data,
        is_published=False,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def get_catalog_version(
    *, session: AsyncSession, version: int
) -> FlowCatalogVersion | None:
    result = await session.execute(
        select(FlowCatalogVersion).where(FlowCatalogVersion.version == version)
    )
    return result.scalar_one_or_none()


async def get_published_catalog(*, session: AsyncSession) -> FlowCatalogVersion | None:
    result = await session.execute(
        select(FlowCatalogVersion)
        .where(FlowCatalogVersion.is_published.is_(True))
        .order_by(FlowCatalogVersion.version.desc())
    )
    return result.scalars().first()


async def list_catalog_versions(
    *, session: AsyncSession, limit: int = 100
) -> list[FlowCatalogVersion]:
    result = await session.execute(
        select(FlowCatalogVersion)
        .order_by(FlowCatalogVersion.version.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_catalog_published(
    *, session: AsyncSession, row: FlowCatalogVersion
) -> FlowCatalogVersion:
    await session.execute(
        update(FlowCatalogVersion)
        .where(FlowCatalogVersion.id != row.id)
        .values(is_published=False)
    )
    row.is_published = True
    row.published_at = dt.datetime.now(dt.timezone.utc)
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row
