from __future__ import annotations

import csv
import datetime as dt
import io
import logging
from collections import Counter
from collections.abc import Iterable

from app.models.chat_metric import MessageType
from app.schemas.catalog import INITIAL_FLOW
from app.schemas.metrics import (
    ChatMetricEvent,
    DateRange,
    DayCount,
    FlowCompletion,
    FlowCount,
    MetricsSummary,
    OptionCount,
    UserCount,
)
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)

TOP_FLOWS = 5
TOP_OPTIONS = 10
TOP_USERS = 10
DAILY_BUCKETS = 30

# Selecting this option counts as leaving a flow satisfied (see DESIGN.md).
BACK_OPTION = "Voltar"

CSV_HEADER = (
    "ID",
    "Data/Hora",
    "ID do Usuário",
    "Usuário",
    "Função",
    "Sessão",
    "Tipo",
    "Mensagem",
    "Fluxo",
    "Opção Selecionada",
    "Foi Útil?",
    "IA Gerada?",
    "Tokens Usados",
    "Tempo de Resposta (ms)",
)

_YES = "Sim"
_NO = "Não"


def empty_summary() -> MetricsSummary:
    return MetricsSummary()


def filter_events(
    events: Iterable[ChatMetricEvent], date_range: DateRange | None = None
) -> list[ChatMetricEvent]:
    if date_range is None:
        return list(events)
    return [e for e in events if date_range.contains(e.timestamp)]


def _ranked(counts: Counter) -> list[tuple[str, int]]:
    # Highest count first; ties broken by key so arrival order never matters.
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def summarize(
    events: Iterable[ChatMetricEvent], date_range: DateRange | None = None
) -> MetricsSummary:
    """Fold an event log into dashboard statistics. Pure and deterministic."""
    filtered = filter_events(events, date_range)
    total = len(filtered)
    if total == 0:
        return empty_summary()

    sessions = {e.session_id for e in filtered}

    flow_counts = Counter(e.flow for e in filtered if e.flow and e.flow != INITIAL_FLOW)
    option_counts = Counter(e.selected_option for e in filtered if e.selected_option)

    votes = [e.was_helpful for e in filtered if e.was_helpful is not None]
    ai_count = sum(1 for e in filtered if e.ai_generated)
    response_times = [e.response_time_ms for e in filtered if e.response_time_ms > 0]

    user_counts: Counter = Counter()
    user_names: dict[str, str] = {}
    for e in sorted(filtered, key=lambda e: (e.timestamp, e.id)):
        user_counts[e.user_id] += 1
        user_names.setdefault(e.user_id, e.user_name)
    top_users = sorted(
        user_counts.items(), key=lambda kv: (-kv[1], user_names[kv[0]], kv[0])
    )[:TOP_USERS]

    day_counts = Counter(
        e.timestamp.astimezone(dt.timezone.utc).date().isoformat() for e in filtered
    )
    days = sorted(day_counts.items())[-DAILY_BUCKETS:]

    visited: dict[str, set[str]] = {}
    completed: dict[str, set[str]] = {}
    for e in filtered:
        if not e.flow or e.flow == INITIAL_FLOW:
            continue
        visited.setdefault(e.flow, set()).add(e.session_id)
        completed.setdefault(e.flow, set())
        if e.was_helpful is not None or e.selected_option == BACK_OPTION:
            completed[e.flow].add(e.session_id)

    return MetricsSummary(
        total_interactions=total,
        total_sessions=len(sessions),
        average_messages_per_session=total / len(sessions),
        most_common_flows=[
            FlowCount(flow=f, count=c) for f, c in _ranked(flow_counts)[:TOP_FLOWS]
        ],
        most_clicked_options=[
            OptionCount(option=o, count=c)
            for o, c in _ranked(option_counts)[:TOP_OPTIONS]
        ],
        helpfulness_rate=_percent(sum(1 for v in votes if v), len(votes)),
        ai_usage_rate=_percent(ai_count, total),
        total_tokens_used=sum(e.tokens_used for e in filtered),
        average_response_time=(
            sum(response_times) / len(response_times) if response_times else 0.0
        ),
        top_users=[
            UserCount(user_name=user_names[uid], interactions=c) for uid, c in top_users
        ],
        interactions_by_day=[DayCount(date=d, count=c) for d, c in days],
        flow_completion_rate=[
            FlowCompletion(
                flow=flow,
                completion_rate=_percent(len(completed[flow]), len(sessions_)),
            )
            for flow, sessions_ in sorted(visited.items())
        ],
    )


async def load_summary(
    store: EventStore, date_range: DateRange | None = None
) -> MetricsSummary:
    """Fetch the full log and summarize it; a read failure yields an empty summary."""
    try:
        events = await store.fetch_all()
    except Exception:
        logger.exception("Could not read chat metrics; returning an empty summary")
        return empty_summary()
    return summarize(events, date_range)


def _tri_state(value: bool | None) -> str:
    if value is None:
        return ""
    return _YES if value else _NO


def export_csv(events: Iterable[ChatMetricEvent]) -> str:
    """Serialize events with a fixed header; quotes inside fields are doubled."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for e in events:
        writer.writerow(
            [
                e.id,
                e.timestamp.isoformat(),
                e.user_id,
                e.user_name,
                e.user_role,
                e.session_id,
                e.message_type.value,
                e.message,
                e.flow,
                e.selected_option or "",
                _tri_state(e.was_helpful),
                _YES if e.ai_generated else _NO,
                e.tokens_used,
                e.response_time_ms,
            ]
        )
    return buf.getvalue()


def parse_csv(text: str) -> list[ChatMetricEvent]:
    """Inverse of `export_csv`."""
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if header is None:
        return []
    if tuple(header) != CSV_HEADER:
        raise ValueError("Unexpected CSV header")

    events: list[ChatMetricEvent] = []
    for row in reader:
        if not row:
            continue
        (
            event_id,
            timestamp,
            user_id,
            user_name,
            user_role,
            session_id,
            message_type,
            message,
            flow,
            selected_option,
            was_helpful,
            ai_generated,
            tokens_used,
            response_time_ms,
        ) = row
        events.append(
            ChatMetricEvent(
                id=event_id,
                user_id=user_id,
                user_name=user_name,
                user_role=user_role,
                timestamp=dt.datetime.fromisoformat(timestamp),
                session_id=session_id,
                message_type=MessageType(message_type),
                message=message,
                flow=flow,
                selected_option=selected_option or None,
                was_helpful=None if was_helpful == "" else was_helpful == _YES,
                ai_generated=ai_generated == _YES,
                tokens_used=int(tokens_used),
                response_time_ms=int(response_time_ms),
            )
        )
    return events
