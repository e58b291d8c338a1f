from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from app.api.event_store import router as event_store_router
from app.api.health import router as health_router
from app.api.v1.api import api_router
from app.core.config import settings
from app.db.session import dispose_engine, engine
from app.models import Base
from app.services.ai_router import AiRouter
from app.services.assistant import MENU_EXTRAS, ChatAssistant
from app.services.event_store import build_event_store
from app.services.flow_catalog import CatalogStore, load_products
from app.services.generation import get_text_generator
from app.services.interaction_logger import InteractionLogger, LogDiagnostics

logger = logging.getLogger(__name__)


def _parse_cors_origins(value: str) -> list[str]:
    raw = (value or "").strip()
    if not raw:
        return []
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(application: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Load-at-start: the published catalog, or the default tree.
    catalog_store = CatalogStore(
        load_products(settings.products_file), extra_options=MENU_EXTRAS
    )
    await catalog_store.load()

    event_store = build_event_store()
    diagnostics = LogDiagnostics()
    interaction_logger = InteractionLogger(event_store, diagnostics)

    application.state.catalog_store = catalog_store
    application.state.event_store = event_store
    application.state.log_diagnostics = diagnostics
    application.state.assistant = ChatAssistant(
        catalog_store=catalog_store,
        ai_router=AiRouter(get_text_generator()),
        interaction_logger=interaction_logger,
    )

    yield

    await interaction_logger.drain()
    if diagnostics.failed:
        logger.warning("%s chat metric events were dropped", diagnostics.failed)
    await dispose_engine()


app = FastAPI(title="Partner Assistant", lifespan=lifespan)


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs")


origins = _parse_cors_origins(settings.cors_allow_origins)

# If allowing '*', credentials must be False.
allow_credentials = False if "*" in origins else True

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or [],
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API router with /api prefix so paths are /api/v1/...
app.include_router(api_router, prefix="/api")
app.include_router(health_router)
app.include_router(event_store_router)
