from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_catalog_store, get_db_session, require_admin_password
from app.core.errors import CatalogIntegrityError
from app.crud.flow_catalog import list_catalog_versions
from app.schemas.catalog import (
    CatalogDraftRequest,
    CatalogPublishRequest,
    CatalogVersionOut,
    FlowCatalog,
)
from app.services.flow_catalog import CatalogStore, publish, save_draft

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("", response_model=FlowCatalog)
async def get_live_catalog(
    store: CatalogStore = Depends(get_catalog_store),
) -> FlowCatalog:
    return store.catalog


@router.get("/versions", response_model=list[CatalogVersionOut])
async def list_versions(
    session: AsyncSession = Depends(get_db_session),
) -> list[CatalogVersionOut]:
    rows = await list_catalog_versions(session=session)
    return [
        CatalogVersionOut(
            version=r.version,
            is_published=r.is_published,
            created_at=r.created_at,
            published_at=r.published_at,
        )
        for r in rows
    ]


@router.post("/drafts", status_code=status.HTTP_201_CREATED)
async def create_draft(
    payload: CatalogDraftRequest,
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    require_admin_password(payload.admin_password)
    version = await save_draft(session=session, nodes=payload.nodes)
    return {"version": version}


@router.post("/versions/{version}/publish", response_model=FlowCatalog)
async def publish_version(
    version: int,
    payload: CatalogPublishRequest,
    session: AsyncSession = Depends(get_db_session),
    store: CatalogStore = Depends(get_catalog_store),
) -> FlowCatalog:
    require_admin_password(payload.admin_password)
    try:
        return await publish(session=session, version=version, store=store)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except CatalogIntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Catalog failed validation", "problems": e.problems},
        ) from e
