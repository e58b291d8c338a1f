from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_assistant
from app.core.errors import SessionNotFoundError, UnknownOptionError
from app.schemas.chat import (
    ChatFeedbackRequest,
    ChatMessageRequest,
    ChatOptionRequest,
    ChatPitchRequest,
    ChatReplyOut,
    IdentityContext,
    SessionOpenRequest,
)
from app.services.assistant import AssistantReply, ChatAssistant

router = APIRouter(prefix="/chat", tags=["chat"])


def _reply_out(reply: AssistantReply) -> ChatReplyOut:
    return ChatReplyOut(
        session_id=reply.session.session_id,
        flow_id=reply.session.flow_id,
        ai_mode_enabled=reply.session.ai_mode_enabled,
        turn=reply.turn,
    )


def _session_not_found(e: SessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/sessions", response_model=ChatReplyOut)
async def open_session(
    payload: SessionOpenRequest,
    assistant: ChatAssistant = Depends(get_assistant),
) -> ChatReplyOut:
    identity = IdentityContext(
        user_id=payload.user_id,
        user_name=payload.user_name,
        user_role=payload.user_role,
    )
    return _reply_out(await assistant.open(identity))


@router.post("/sessions/{session_id}/messages", response_model=ChatReplyOut)
async def send_message(
    session_id: str,
    payload: ChatMessageRequest,
    assistant: ChatAssistant = Depends(get_assistant),
) -> ChatReplyOut:
    try:
        reply = await assistant.send_text(session_id, payload.message)
    except SessionNotFoundError as e:
        raise _session_not_found(e) from e
    return _reply_out(reply)


@router.post("/sessions/{session_id}/options", response_model=ChatReplyOut)
async def select_option(
    session_id: str,
    payload: ChatOptionRequest,
    assistant: ChatAssistant = Depends(get_assistant),
) -> ChatReplyOut:
    try:
        reply = await assistant.select_option(session_id, payload.option_id)
    except SessionNotFoundError as e:
        raise _session_not_found(e) from e
    except UnknownOptionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return _reply_out(reply)


@router.post("/sessions/{session_id}/feedback", response_model=ChatReplyOut)
async def send_feedback(
    session_id: str,
    payload: ChatFeedbackRequest,
    assistant: ChatAssistant = Depends(get_assistant),
) -> ChatReplyOut:
    try:
        reply = await assistant.feedback(
            session_id, payload.was_helpful, turn_id=payload.turn_id
        )
    except SessionNotFoundError as e:
        raise _session_not_found(e) from e
    return _reply_out(reply)


@router.post("/sessions/{session_id}/pitch", response_model=ChatReplyOut)
async def generate_pitch(
    session_id: str,
    payload: ChatPitchRequest,
    assistant: ChatAssistant = Depends(get_assistant),
) -> ChatReplyOut:
    try:
        reply = await assistant.pitch_with_ai(session_id, payload.product_id)
    except SessionNotFoundError as e:
        raise _session_not_found(e) from e
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return _reply_out(reply)


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def close_session(
    session_id: str,
    assistant: ChatAssistant = Depends(get_assistant),
) -> Response:
    try:
        assistant.close(session_id)
    except SessionNotFoundError as e:
        raise _session_not_found(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
