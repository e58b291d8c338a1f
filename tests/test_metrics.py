import datetime as dt

import pytest
from pydantic import ValidationError
from pytest import approx

from app.models.chat_metric import MessageType
from app.schemas.metrics import DateRange, MetricsSummary
from app.services.metrics import (
    CSV_HEADER,
    export_csv,
    load_summary,
    parse_csv,
    summarize,
)
from tests.fakes import FailingEventStore, InMemoryEventStore, make_event

UTC = dt.timezone.utc


def _at(day, hour=12, minute=0):
    return dt.datetime(2024, 1, day, hour, minute, tzinfo=UTC)


# ----------------------------------------------------------------------------
# Date ranges
# ----------------------------------------------------------------------------


class TestDateRange:
    def test_bare_dates_cover_whole_days(self):
        date_range = DateRange(start="2024-01-01", end="2024-01-02")

        assert date_range.contains(dt.datetime(2024, 1, 1, 0, 0, tzinfo=UTC))
        assert date_range.contains(dt.datetime(2024, 1, 2, 23, 59, 59, tzinfo=UTC))
        assert not date_range.contains(dt.datetime(2024, 1, 3, 0, 0, tzinfo=UTC))

    def test_open_ended(self):
        assert DateRange(start="2024-01-02").contains(_at(30))
        assert not DateRange(end="2024-01-02").contains(_at(3))

    def test_start_after_end_is_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(start="2024-01-05", end="2024-01-01")


# ----------------------------------------------------------------------------
# Aggregation
# ----------------------------------------------------------------------------


class TestSummarize:
    def test_empty_log(self):
        summary = summarize([])

        assert summary == MetricsSummary()
        assert summary.total_interactions == 0
        assert summary.average_messages_per_session == 0
        assert summary.helpfulness_rate == 0
        assert summary.interactions_by_day == []

    def test_totals(self):
        events = [
            make_event(session_id="s1"),
            make_event(session_id="s1"),
            make_event(session_id="s1"),
            make_event(session_id="s2"),
        ]

        summary = summarize(events)

        assert summary.total_interactions == 4
        assert summary.total_sessions == 2
        assert summary.average_messages_per_session == 2

    def test_initial_flow_is_not_ranked(self):
        events = [make_event(flow="initial") for _ in range(5)] + [
            make_event(flow="doubts"),
            make_event(flow="pitch"),
            make_event(flow="pitch"),
        ]

        flows = summarize(events).most_common_flows

        assert [(f.flow, f.count) for f in flows] == [("pitch", 2), ("doubts", 1)]

    def test_clicked_options(self):
        events = [
            make_event(selected_option="Comissões"),
            make_event(selected_option="Voltar"),
            make_event(selected_option="Comissões"),
            make_event(),
        ]

        options = summarize(events).most_clicked_options

        assert [(o.option, o.count) for o in options] == [
            ("Comissões", 2),
            ("Voltar", 1),
        ]

    def test_helpfulness_counts_only_voted_events(self):
        votes = [True, True, True, True, False, False]
        events = [make_event(was_helpful=v) for v in votes] + [make_event()] * 4

        assert summarize(events).helpfulness_rate == approx(66.67, abs=0.01)

    def test_ai_usage_and_tokens(self):
        events = [
            make_event(message_type=MessageType.bot, ai_generated=True, tokens_used=30),
            make_event(message_type=MessageType.bot, ai_generated=True, tokens_used=70),
            make_event(),
            make_event(),
        ]

        summary = summarize(events)

        assert summary.ai_usage_rate == 50
        assert summary.total_tokens_used == 100

    def test_average_response_time_ignores_unmeasured_turns(self):
        events = [
            make_event(response_time_ms=0),
            make_event(response_time_ms=100),
            make_event(response_time_ms=300),
        ]

        assert summarize(events).average_response_time == 200

    def test_top_users_use_earliest_name(self):
        events = [
            make_event(user_id="u1", user_name="Ana Maria", timestamp=_at(2)),
            make_event(user_id="u1", user_name="Ana", timestamp=_at(1)),
            make_event(user_id="u2", user_name="Bruno", timestamp=_at(1)),
            make_event(user_id="u1", user_name="Ana", timestamp=_at(3)),
        ]

        users = summarize(events).top_users

        assert [(u.user_name, u.interactions) for u in users] == [
            ("Ana", 3),
            ("Bruno", 1),
        ]

    def test_interactions_by_day_within_range(self):
        events = [
            make_event(timestamp=_at(1, 9)),
            make_event(timestamp=_at(1, 15)),
            make_event(timestamp=_at(1, 23, 59)),
            make_event(timestamp=_at(2, 8)),
            make_event(timestamp=_at(3, 8)),
        ]
        date_range = DateRange(start="2024-01-01", end="2024-01-02")

        summary = summarize(events, date_range)

        assert [d.model_dump() for d in summary.interactions_by_day] == [
            {"date": "2024-01-01", "count": 3},
            {"date": "2024-01-02", "count": 1},
        ]
        assert summary.total_interactions == 4

    def test_interactions_by_day_keeps_last_thirty_days(self):
        start = dt.datetime(2024, 1, 1, 12, tzinfo=UTC)
        events = [make_event(timestamp=start + dt.timedelta(days=i)) for i in range(40)]

        days = summarize(events).interactions_by_day

        assert len(days) == 30
        assert days[0].date == "2024-01-11"
        assert days[-1].date == "2024-02-09"

    def test_flow_completion_rate(self):
        events = [
            make_event(session_id="s1", flow="doubts"),
            make_event(session_id="s1", flow="doubts", selected_option="Voltar"),
            make_event(session_id="s2", flow="doubts"),
            make_event(session_id="s3", flow="pitch", was_helpful=False),
            make_event(session_id="s3", flow="initial"),
        ]

        rates = summarize(events).flow_completion_rate

        assert [(r.flow, r.completion_rate) for r in rates] == [
            ("doubts", 50.0),
            ("pitch", 100.0),
        ]

    def test_input_order_does_not_matter(self):
        events = [
            make_event(user_id="u1", user_name="Ana", flow="doubts", timestamp=_at(1)),
            make_event(user_id="u2", user_name="Bruno", flow="pitch", timestamp=_at(2)),
            make_event(user_id="u3", user_name="Caio", flow="info", timestamp=_at(3)),
        ]

        assert summarize(events) == summarize(list(reversed(events)))

    def test_summary_is_pure(self):
        events = [make_event(), make_event(was_helpful=True)]
        snapshot = list(events)

        first = summarize(events)
        second = summarize(events)

        assert first == second
        assert events == snapshot

    def test_summary_serializes_camel_case(self):
        dumped = summarize([make_event(was_helpful=True)]).model_dump(by_alias=True)

        assert dumped["totalInteractions"] == 1
        assert dumped["helpfulnessRate"] == 100
        assert "interactionsByDay" in dumped


# ----------------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------------


async def test_load_summary_reads_the_store():
    store = InMemoryEventStore([make_event(), make_event(session_id="s2")])

    summary = await load_summary(store)

    assert summary.total_sessions == 2


async def test_load_summary_failure_is_empty_summary():
    assert await load_summary(FailingEventStore()) == MetricsSummary()


# ----------------------------------------------------------------------------
# CSV export
# ----------------------------------------------------------------------------


class TestCsv:
    def test_header_row(self):
        assert export_csv([]) == ",".join(CSV_HEADER) + "\n"

    def test_quotes_are_doubled(self):
        text = export_csv([make_event(message='He said "hi"')])

        assert '"He said ""hi"""' in text

    def test_booleans_are_rendered_in_portuguese(self):
        text = export_csv(
            [
                make_event(was_helpful=True, ai_generated=False),
                make_event(was_helpful=False, ai_generated=True),
                make_event(),
            ]
        )
        rows = text.strip().split("\n")[1:]

        assert rows[0].endswith(",Sim,Não,0,0")
        assert rows[1].endswith(",Não,Sim,0,0")
        assert rows[2].endswith(",,Não,0,0")

    def test_parse_restores_exported_events(self):
        events = [
            make_event(message='He said "hi"', selected_option="Comissões"),
            make_event(
                message="linha 1\nlinha 2, com vírgula",
                message_type=MessageType.bot,
                was_helpful=False,
                ai_generated=True,
                tokens_used=12,
                response_time_ms=340,
            ),
        ]

        assert parse_csv(export_csv(events)) == events

    def test_parse_rejects_foreign_header(self):
        with pytest.raises(ValueError):
            parse_csv("a,b,c\n1,2,3\n")
