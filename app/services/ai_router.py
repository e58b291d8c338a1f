from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from app.models.chat_metric import MessageType
from app.schemas.catalog import Product
from app.schemas.chat import ChatTurn, TurnOption
from app.services.generation import TextGenerator

logger = logging.getLogger(__name__)

# Control buttons. Handled by the assistant, never by the flow engine.
ASK_AGAIN = TurnOption(id="ai:ask", label="Fazer outra pergunta")
BACK_TO_MENU = TurnOption(id="ai:menu", label="Voltar ao menu")
DISABLE_AI = TurnOption(id="ai:disable", label="Desativar IA")
RETRY = TurnOption(id="ai:retry", label="Tentar novamente")
ENABLE_AI = TurnOption(id="ai:enable", label="🤖 Modo IA")
AI_PITCH = TurnOption(id="ai:pitch", label="🤖 Gerar com IA")

# Product buttons offered after AI_PITCH carry this prefix plus the product id.
AI_PITCH_PRODUCT_PREFIX = "ai:pitch:"
# Typed text that asks for an AI pitch while in the pitch flow.
AI_PITCH_KEYWORDS = ("gerar com ia", "🤖")

AI_OPTIONS = (ASK_AGAIN, BACK_TO_MENU, DISABLE_AI)
RECOVERY_OPTIONS = (RETRY, BACK_TO_MENU)

APOLOGY_TEXT = (
    "Desculpe, houve um erro ao conectar com a IA. "
    "Vou responder usando meu conhecimento padrão."
)

DEFAULT_USER_NAME = "Parceiro"


def fallback_pitch(product_name: str) -> str:
    return (
        f"Olá! Gostaria de apresentar nosso produto {product_name}.\n\n"
        "Com a nossa solução, você oferece uma plataforma completa e moderna que "
        "simplifica processos, reduz custos e aumenta a satisfação dos colaboradores.\n\n"
        "Principais benefícios:\n"
        "• Implementação rápida e sem burocracia\n"
        "• Economia em custos operacionais\n"
        "• Suporte especializado\n"
        "• Plataforma intuitiva e segura\n\n"
        "Vamos agendar uma demonstração?"
    )


@dataclass(frozen=True, slots=True)
class AiContext:
    products: tuple[Product, ...] = ()
    user_name: str | None = None

    def render(self) -> str:
        names = ", ".join(p.name for p in self.products)
        return (
            "Sistema: Você é um assistente ajudando parceiros com vendas de produtos "
            "financeiros.\n"
            f"Produtos disponíveis: {names}.\n"
            f"Usuário: {self.user_name or DEFAULT_USER_NAME}"
        )


@dataclass(frozen=True, slots=True)
class GeneratedTurn:
    turn: ChatTurn
    tokens_used: int = 0
    response_time_ms: int = 0
    failed: bool = False


@dataclass(slots=True)
class AiRouter:
    """Sends free text to the text generator; a failure never escapes."""

    generator: TextGenerator
    clock: Callable[[], float] = field(default=time.monotonic)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self.clock() - started) * 1000)))

    async def route(self, message: str, context: AiContext) -> GeneratedTurn:
        started = self.clock()
        try:
            result = await self.generator.generate(message, context.render())
        except Exception:
            logger.exception("AI generation failed; answering with the apology turn")
            return GeneratedTurn(
                turn=ChatTurn(
                    role=MessageType.bot,
                    content=APOLOGY_TEXT,
                    options=RECOVERY_OPTIONS,
                ),
                response_time_ms=self._elapsed_ms(started),
                failed=True,
            )

        return GeneratedTurn(
            turn=ChatTurn(
                role=MessageType.bot,
                content=result.text,
                options=AI_OPTIONS,
                is_generated=True,
            ),
            tokens_used=max(0, result.tokens_used),
            response_time_ms=self._elapsed_ms(started),
        )

    async def generate_pitch(
        self,
        product: Product,
        options: tuple[TurnOption, ...],
        client_context: str | None = None,
    ) -> GeneratedTurn:
        context = (
            "Você é um especialista em vendas. Crie um pitch de vendas persuasivo e "
            f'profissional para o produto "{product.name}".\n\n'
            + (f"Contexto do cliente: {client_context}\n\n" if client_context else "")
            + "O pitch deve incluir:\n"
            "1. Abertura impactante\n"
            "2. 3-4 benefícios principais\n"
            "3. Diferencial competitivo\n"
            "4. Call to action forte\n\n"
            "Mantenha tom profissional mas acessível."
        )
        started = self.clock()
        try:
            result = await self.generator.generate("Crie o pitch de vendas", context)
        except Exception:
            logger.exception("AI pitch generation failed for product %s", product.id)
            return GeneratedTurn(
                turn=ChatTurn(
                    role=MessageType.bot,
                    content=fallback_pitch(product.name),
                    options=options,
                ),
                response_time_ms=self._elapsed_ms(started),
                failed=True,
            )

        return GeneratedTurn(
            turn=ChatTurn(
                role=MessageType.bot,
                content=f"🤖 **Pitch gerado por IA: {product.name}**\n\n{result.text}",
                options=options,
                is_generated=True,
            ),
            tokens_used=max(0, result.tokens_used),
            response_time_ms=self._elapsed_ms(started),
        )
