from __future__ import annotations

import datetime as dt

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.models.chat_metric import MessageType


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


class ChatMetricEvent(_CamelModel):
    id: str = Field(min_length=1, max_length=64)
    user_id: str
    user_name: str = ""
    user_role: str = ""
    timestamp: dt.datetime
    session_id: str
    message_type: MessageType
    message: str = ""
    flow: str
    selected_option: str | None = None
    # None: no vote on this turn
    was_helpful: bool | None = None
    ai_generated: bool = False
    tokens_used: int = Field(default=0, ge=0)
    response_time_ms: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices(
            "responseTimeMs", "responseTime", "response_time_ms"
        ),
        serialization_alias="responseTimeMs",
    )

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, v: dt.datetime) -> dt.datetime:
        return _as_utc(v)

    @field_validator("tokens_used", "response_time_ms", mode="before")
    @classmethod
    def _none_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("ai_generated", mode="before")
    @classmethod
    def _none_is_false(cls, v):
        return False if v is None else v


def _coerce_day(value):
    if isinstance(value, str) and len(value) == 10:
        return dt.date.fromisoformat(value)
    return value


class DateRange(BaseModel):
    """Inclusive timestamp range; a missing bound is unbounded.

    A bare date as `end` covers that whole (UTC) day.
    """

    start: dt.datetime | None = None
    end: dt.datetime | None = None

    @field_validator("start", mode="before")
    @classmethod
    def _start_of_day(cls, v):
        v = _coerce_day(v)
        if isinstance(v, dt.date) and not isinstance(v, dt.datetime):
            return dt.datetime.combine(v, dt.time.min, tzinfo=dt.timezone.utc)
        return v

    @field_validator("end", mode="before")
    @classmethod
    def _end_of_day(cls, v):
        v = _coerce_day(v)
        if isinstance(v, dt.date) and not isinstance(v, dt.datetime):
            return dt.datetime.combine(v, dt.time.max, tzinfo=dt.timezone.utc)
        return v

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, v: dt.datetime | None) -> dt.datetime | None:
        return None if v is None else _as_utc(v)

    @model_validator(mode="after")
    def _ordered(self) -> DateRange:
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def contains(self, ts: dt.datetime) -> bool:
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True


class FlowCount(_CamelModel):
    flow: str
    count: int


class OptionCount(_CamelModel):
    option: str
    count: int


class UserCount(_CamelModel):
    user_name: str
    interactions: int


class DayCount(_CamelModel):
    date: str
    count: int


class FlowCompletion(_CamelModel):
    flow: str
    completion_rate: float


class MetricsSummary(_CamelModel):
    total_interactions: int = 0
    total_sessions: int = 0
    average_messages_per_session: float = 0.0
    most_common_flows: list[FlowCount] = Field(default_factory=list)
    most_clicked_options: list[OptionCount] = Field(default_factory=list)
    helpfulness_rate: float = 0.0
    ai_usage_rate: float = 0.0
    total_tokens_used: int = 0
    average_response_time: float = 0.0
    top_users: list[UserCount] = Field(default_factory=list)
    interactions_by_day: list[DayCount] = Field(default_factory=list)
    flow_completion_rate: list[FlowCompletion] = Field(default_factory=list)


class LogDiagnosticsOut(BaseModel):
    ok: int
    failed: int
    last_error: str | None
    last_failed_event_id: str | None
