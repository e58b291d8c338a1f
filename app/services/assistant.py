from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.errors import SessionNotFoundError, UnknownOptionError
from app.models.chat_metric import MessageType
from app.schemas.catalog import INITIAL_FLOW, Product
from app.schemas.chat import ChatSession, ChatTurn, IdentityContext, TurnOption
from app.services import ai_router as ai
from app.services.ai_router import AiContext, AiRouter
from app.services.flow_catalog import PITCH_FLOW, CatalogStore
from app.services.flow_engine import FlowEngine, OptionSelection
from app.services.interaction_logger import InteractionLogger, build_event

logger = logging.getLogger(__name__)

AI_ENABLED_TEXT = (
    "🤖 Modo IA ativado! Agora estou usando inteligência artificial avançada "
    "para responder suas perguntas. Pergunte qualquer coisa!"
)
AI_DISABLED_TEXT = "Modo IA desativado. Voltando ao menu principal."
BACK_TO_MENU_TEXT = "Como posso ajudá-lo?"
ASK_AGAIN_TEXT = "Claro! Pode enviar sua próxima pergunta."
HELPFUL_TEXT = "😊 Ótimo! Fico feliz em poder ajudar!"
NOT_HELPFUL_TEXT = "😔 Desculpe não ter ajudado mais. Vou melhorar!"
AI_PITCH_PROMPT_TEXT = "Para qual produto você gostaria que eu gerasse um pitch com IA?"
NO_PRODUCTS_TEXT = "Não há produtos disponíveis para gerar um pitch."

# Buttons appended to every turn rendered for these flows.
MENU_EXTRAS = {INITIAL_FLOW: (ai.ENABLE_AI,), PITCH_FLOW: (ai.AI_PITCH,)}


@dataclass(frozen=True, slots=True)
class AssistantReply:
    session: ChatSession
    turn: ChatTurn


class SessionRegistry:
    """In-memory sessions, one per widget activation. Nothing is persisted."""

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> ChatSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def save(self, session: ChatSession) -> ChatSession:
        self._sessions[session.session_id] = session
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)


class ChatAssistant:
    """Dispatches widget input to the flow engine or the AI router and logs every turn."""

    def __init__(
        self,
        *,
        catalog_store: CatalogStore,
        ai_router: AiRouter,
        interaction_logger: InteractionLogger,
        registry: SessionRegistry | None = None,
    ):
        self._catalog_store = catalog_store
        self._ai_router = ai_router
        self._logger = interaction_logger
        self.registry = registry or SessionRegistry()

    @property
    def engine(self) -> FlowEngine:
        return self._catalog_store.engine()

    @property
    def products(self) -> list[Product]:
        return self._catalog_store.products

    def _ai_context(self, session: ChatSession) -> AiContext:
        return AiContext(
            products=tuple(self.products), user_name=session.identity.user_name or None
        )

    def _log_user(
        self,
        session: ChatSession,
        content: str,
        flow: str,
        selected_option: str | None = None,
    ) -> None:
        self._logger.log(
            build_event(
                session,
                message_type=MessageType.user,
                message=content,
                flow=flow,
                selected_option=selected_option,
            )
        )

    def _log_bot(
        self,
        session: ChatSession,
        turn: ChatTurn,
        *,
        tokens_used: int = 0,
        response_time_ms: int = 0,
    ) -> None:
        self._logger.log(
            build_event(
                session,
                message_type=MessageType.bot,
                message=turn.content,
                flow=session.flow_id,
                ai_generated=turn.is_generated,
                tokens_used=tokens_used,
                response_time_ms=response_time_ms,
            )
        )

    def _finish(self, session: ChatSession, turn: ChatTurn, **metrics) -> AssistantReply:
        self.registry.save(session)
        self._log_bot(session, turn, **metrics)
        return AssistantReply(session=session, turn=turn)

    async def open(self, identity: IdentityContext) -> AssistantReply:
        resolution = self.engine.start(ChatSession(identity=identity))
        logger.info("Opened chat session %s", resolution.session.session_id)
        return self._finish(resolution.session, resolution.turn)

    def close(self, session_id: str) -> None:
        self.registry.close(session_id)

    async def send_text(self, session_id: str, text: str) -> AssistantReply:
        session = self.registry.get(session_id)
        self._log_user(session, text, session.flow_id)

        if session.ai_mode_enabled:
            user_turn = ChatTurn(role=MessageType.user, content=text)
            return await self._ask_ai(session.with_turns(user_turn), text)

        if session.flow_id == PITCH_FLOW and _asks_for_ai_pitch(text):
            user_turn = ChatTurn(role=MessageType.user, content=text)
            return self._offer_pitch_products(session.with_turns(user_turn))

        resolution = self.engine.resolve(session, text)
        return self._finish(resolution.session, resolution.turn)

    async def select_option(self, session_id: str, option_id: str) -> AssistantReply:
        session = self.registry.get(session_id)

        if option_id.startswith(ai.AI_PITCH_PRODUCT_PREFIX):
            product_id = option_id[len(ai.AI_PITCH_PRODUCT_PREFIX) :]
            if self._product(product_id) is None:
                raise UnknownOptionError(session.flow_id, option_id)
            return await self.pitch_with_ai(session_id, product_id)

        control = _CONTROL_LABELS.get(option_id)
        if control is not None:
            self._log_user(session, control, session.flow_id, selected_option=control)
            user_turn = ChatTurn(role=MessageType.user, content=control)
            return await self._control(session.with_turns(user_turn), option_id)

        if session.ai_mode_enabled:
            # A catalog button leaves AI mode, as "Voltar ao menu" does.
            session = session.model_copy(
                update={"ai_mode_enabled": False, "pending_question": None}
            )
        resolution = self.engine.resolve(session, OptionSelection(option_id))
        label = resolution.option.label
        self._log_user(session, label, resolution.previous_flow, selected_option=label)
        return self._finish(resolution.session, resolution.turn)

    async def feedback(
        self, session_id: str, was_helpful: bool, turn_id: str | None = None
    ) -> AssistantReply:
        session = self.registry.get(session_id)
        voted = next((t for t in session.turns if t.id == turn_id), None)
        self._logger.log(
            build_event(
                session,
                message_type=MessageType.bot,
                message=voted.content if voted else "",
                flow=session.flow_id,
                was_helpful=was_helpful,
            )
        )
        text = HELPFUL_TEXT if was_helpful else NOT_HELPFUL_TEXT
        if session.ai_mode_enabled:
            turn = ChatTurn(role=MessageType.bot, content=text, options=ai.AI_OPTIONS)
            return self._finish(session.with_turns(turn), turn)
        resolution = self.engine.reoffer(session, text)
        return self._finish(resolution.session, resolution.turn)

    async def pitch_with_ai(self, session_id: str, product_id: str) -> AssistantReply:
        session = self.registry.get(session_id)
        product = self._product(product_id)
        if product is None:
            raise LookupError(f"Unknown product {product_id!r}")

        request = f"{ai.AI_PITCH.label}: {product.name}"
        self._log_user(session, request, session.flow_id)
        session = session.with_turns(ChatTurn(role=MessageType.user, content=request))
        node = self.engine.node(session.flow_id)
        generated = await self._ai_router.generate_pitch(
            product, self.engine.options_for(node), product.description or None
        )
        return self._finish(
            session.with_turns(generated.turn),
            generated.turn,
            tokens_used=generated.tokens_used,
            response_time_ms=generated.response_time_ms,
        )

    def _product(self, product_id: str) -> Product | None:
        return next((p for p in self.products if p.id == product_id), None)

    def _offer_pitch_products(self, session: ChatSession) -> AssistantReply:
        products = [p for p in self.products if p.name.strip()]
        if not products:
            resolution = self.engine.reoffer(session, NO_PRODUCTS_TEXT)
            return self._finish(resolution.session, resolution.turn)

        options = tuple(
            TurnOption(id=f"{ai.AI_PITCH_PRODUCT_PREFIX}{p.id}", label=p.name)
            for p in products
        )
        turn = ChatTurn(
            role=MessageType.bot,
            content=AI_PITCH_PROMPT_TEXT,
            options=options + (ai.BACK_TO_MENU,),
        )
        return self._finish(session.with_turns(turn), turn)

    async def _ask_ai(self, session: ChatSession, text: str) -> AssistantReply:
        generated = await self._ai_router.route(text, self._ai_context(session))
        updated = session.with_turns(generated.turn, pending_question=text)
        return self._finish(
            updated,
            generated.turn,
            tokens_used=generated.tokens_used,
            response_time_ms=generated.response_time_ms,
        )

    async def _control(self, session: ChatSession, option_id: str) -> AssistantReply:
        if option_id == ai.AI_PITCH.id:
            return self._offer_pitch_products(session)

        if option_id == ai.ENABLE_AI.id:
            turn = ChatTurn(
                role=MessageType.bot,
                content=AI_ENABLED_TEXT,
                options=(ai.BACK_TO_MENU, ai.DISABLE_AI),
            )
            return self._finish(session.with_turns(turn, ai_mode_enabled=True), turn)

        if option_id == ai.RETRY.id and session.pending_question:
            return await self._ask_ai(session, session.pending_question)

        if option_id in (ai.ASK_AGAIN.id, ai.RETRY.id):
            turn = ChatTurn(
                role=MessageType.bot, content=ASK_AGAIN_TEXT, options=ai.AI_OPTIONS
            )
            return self._finish(session.with_turns(turn, ai_mode_enabled=True), turn)

        # Back to menu and disable both leave AI mode and return to the main menu.
        text = AI_DISABLED_TEXT if option_id == ai.DISABLE_AI.id else BACK_TO_MENU_TEXT
        reset = session.model_copy(
            update={
                "ai_mode_enabled": False,
                "flow_id": INITIAL_FLOW,
                "pending_question": None,
            }
        )
        resolution = self.engine.reoffer(reset, text)
        return self._finish(resolution.session, resolution.turn)


_CONTROL_LABELS = {
    o.id: o.label
    for o in (
        ai.ENABLE_AI,
        ai.DISABLE_AI,
        ai.BACK_TO_MENU,
        ai.RETRY,
        ai.ASK_AGAIN,
        ai.AI_PITCH,
    )
}


def _asks_for_ai_pitch(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in ai.AI_PITCH_KEYWORDS)
