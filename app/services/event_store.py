from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from app.core.config import Settings, settings
from app.core.errors import EventStoreError
from app.crud.chat_metric import create_chat_metric, list_chat_metrics, to_event
from app.db.session import async_session_maker
from app.schemas.metrics import ChatMetricEvent

logger = logging.getLogger(__name__)


class EventStore(Protocol):
    async def append(self, event: ChatMetricEvent) -> None: ...

    async def fetch_all(self) -> list[ChatMetricEvent]: ...


class HttpEventStore:
    """Remote event store: `POST /chat_metrics` appends, `GET /chat_metrics` lists."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    async def append(self, event: ChatMetricEvent) -> None:
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/chat_metrics", json=event.model_dump(mode="json", by_alias=True)
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise EventStoreError(f"append failed: {e}") from e

    async def fetch_all(self) -> list[ChatMetricEvent]:
        try:
            async with self._client() as client:
                resp = await client.get("/chat_metrics")
                resp.raise_for_status()
                rows = resp.json()
        except httpx.HTTPError as e:
            raise EventStoreError(f"fetch failed: {e}") from e
        except ValueError as e:
            raise EventStoreError(f"malformed event log: {e}") from e
        if not isinstance(rows, list):
            raise EventStoreError(
                f"malformed event log: expected a list, got {type(rows).__name__}"
            )

        events = []
        for index, row in enumerate(rows):
            try:
                events.append(ChatMetricEvent.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping chat metric row %d: %s", index, e)
        return events


class DatabaseEventStore:
    """Local chat_metrics table; used when no remote store is configured."""

    async def append(self, event: ChatMetricEvent) -> None:
        async with async_session_maker() as session:
            await create_chat_metric(session=session, event=event)

    async def fetch_all(self) -> list[ChatMetricEvent]:
        async with async_session_maker() as session:
            rows = await list_chat_metrics(session=session)
        return [to_event(r) for r in rows]


def build_event_store(config: Settings = settings) -> EventStore:
    if config.event_store_url.strip():
        logger.info("Chat metrics go to remote event store %s", config.event_store_url)
        return HttpEventStore(
            base_url=config.event_store_url.strip(),
            timeout=config.event_store_timeout_seconds,
        )
    return DatabaseEventStore()
