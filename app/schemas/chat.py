from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict, Field

from app.models.chat_metric import MessageType
from app.schemas.catalog import INITIAL_FLOW


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class IdentityContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    user_name: str = ""
    user_role: str = ""


class TurnOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: MessageType
    content: str
    created_at: dt.datetime = Field(default_factory=utcnow)
    options: tuple[TurnOption, ...] | None = None
    is_generated: bool = False

    def option_labels(self) -> list[str]:
        return [o.label for o in self.options or ()]


class ChatSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=lambda: f"session-{new_id()}")
    identity: IdentityContext
    flow_id: str = INITIAL_FLOW
    ai_mode_enabled: bool = False
    # Last free-text question sent to the AI, replayed by "Tentar novamente".
    pending_question: str | None = None
    turns: tuple[ChatTurn, ...] = ()

    def with_turns(self, *turns: ChatTurn, **changes) -> ChatSession:
        return self.model_copy(update={"turns": self.turns + turns, **changes})

    def last_bot_turn(self) -> ChatTurn | None:
        return next((t for t in reversed(self.turns) if t.role == MessageType.bot), None)


class SessionOpenRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    user_name: str = Field(default="", max_length=255)
    user_role: str = Field(default="", max_length=64)


class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=8000)


class ChatOptionRequest(BaseModel):
    option_id: str = Field(min_length=1, max_length=64)


class ChatFeedbackRequest(BaseModel):
    was_helpful: bool
    turn_id: str | None = None


class ChatPitchRequest(BaseModel):
    product_id: str = Field(min_length=1)


class ChatReplyOut(BaseModel):
    session_id: str
    flow_id: str
    ai_mode_enabled: bool
    turn: ChatTurn
