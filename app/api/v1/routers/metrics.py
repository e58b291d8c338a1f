from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from app.api.deps import get_event_store, get_log_diagnostics
from app.core.errors import EventStoreError
from app.schemas.metrics import DateRange, LogDiagnosticsOut, MetricsSummary
from app.services.event_store import EventStore
from app.services.interaction_logger import LogDiagnostics
from app.services.metrics import export_csv, filter_events, load_summary

router = APIRouter(prefix="/metrics", tags=["metrics"])


def _date_range(start: str | None, end: str | None) -> DateRange | None:
    if not start and not end:
        return None
    try:
        return DateRange(start=start or None, end=end or None)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e


@router.get("/summary", response_model=MetricsSummary)
async def get_summary(
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
    store: EventStore = Depends(get_event_store),
) -> MetricsSummary:
    return await load_summary(store, _date_range(start, end))


@router.get("/export")
async def export_metrics(
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
    store: EventStore = Depends(get_event_store),
) -> Response:
    date_range = _date_range(start, end)
    try:
        events = filter_events(await store.fetch_all(), date_range)
    except EventStoreError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    filename = f"chat-metrics-{dt.date.today().isoformat()}.csv"
    return Response(
        content=export_csv(events),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/diagnostics", response_model=LogDiagnosticsOut)
async def get_log_diagnostics_snapshot(
    diagnostics: LogDiagnostics = Depends(get_log_diagnostics),
) -> LogDiagnosticsOut:
    return diagnostics.snapshot()
