from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from app.models.chat_metric import MessageType
from app.schemas.chat import ChatSession, new_id, utcnow
from app.schemas.metrics import ChatMetricEvent, LogDiagnosticsOut
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LogResult:
    ok: bool
    event_id: str
    error: str | None = None


class LogDiagnostics:
    """Operator-facing record of append outcomes. Never seen by the chat UI."""

    def __init__(self) -> None:
        self.ok = 0
        self.failed = 0
        self.last_error: str | None = None
        self.last_failed_event_id: str | None = None
        self._listeners: list[Callable[[LogResult], None]] = []

    def subscribe(self, listener: Callable[[LogResult], None]) -> None:
        self._listeners.append(listener)

    def record(self, result: LogResult) -> None:
        if result.ok:
            self.ok += 1
        else:
            self.failed += 1
            self.last_error = result.error
            self.last_failed_event_id = result.event_id
        for listener in self._listeners:
            try:
                listener(result)
            except Exception:
                logger.exception("Log diagnostics listener failed")

    def snapshot(self) -> LogDiagnosticsOut:
        return LogDiagnosticsOut(
            ok=self.ok,
            failed=self.failed,
            last_error=self.last_error,
            last_failed_event_id=self.last_failed_event_id,
        )


def build_event(
    session: ChatSession,
    *,
    message_type: MessageType,
    message: str,
    flow: str,
    selected_option: str | None = None,
    was_helpful: bool | None = None,
    ai_generated: bool = False,
    tokens_used: int = 0,
    response_time_ms: int = 0,
) -> ChatMetricEvent:
    identity = session.identity
    return ChatMetricEvent(
        id=new_id(),
        user_id=identity.user_id,
        user_name=identity.user_name,
        user_role=identity.user_role,
        timestamp=utcnow(),
        session_id=session.session_id,
        message_type=message_type,
        message=message,
        flow=flow,
        selected_option=selected_option,
        was_helpful=was_helpful,
        ai_generated=ai_generated,
        tokens_used=tokens_used,
        response_time_ms=response_time_ms,
    )


class InteractionLogger:
    """Fire-and-forget append of chat metric events.

    `log` schedules the append and returns immediately. Failures are logged,
    reported to `diagnostics` and dropped.
    """

    def __init__(self, store: EventStore, diagnostics: LogDiagnostics | None = None):
        self._store = store
        self.diagnostics = diagnostics or LogDiagnostics()
        self._pending: set[asyncio.Task] = set()

    def log(self, event: ChatMetricEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; dropping chat metric %s", event.id)
            self.diagnostics.record(
                LogResult(ok=False, event_id=event.id, error="no running event loop")
            )
            return

        task = loop.create_task(self._append(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _append(self, event: ChatMetricEvent) -> LogResult:
        try:
            await self._store.append(event)
        except Exception as e:
            logger.warning("Failed to log chat metric %s: %s", event.id, e)
            result = LogResult(ok=False, event_id=event.id, error=str(e) or type(e).__name__)
        else:
            result = LogResult(ok=True, event_id=event.id)
        self.diagnostics.record(result)
        return result

    async def drain(self) -> None:
        """Wait for in-flight appends (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
