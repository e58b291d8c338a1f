from __future__ import annotations

import json
import logging
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.flow_catalog import (
    create_catalog_draft,
    get_catalog_version,
    get_published_catalog,
    mark_catalog_published,
)
from app.core.errors import CatalogIntegrityError
from app.db.session import async_session_maker
from app.schemas.catalog import INITIAL_FLOW, FlowCatalog, FlowNode, FlowOption, Product
from app.services.flow_engine import FlowEngine

logger = logging.getLogger(__name__)

PITCH_FLOW = "pitch"

BACK_LABEL = "Voltar"
BACK_KEYWORDS = ["voltar", "menu"]

GREETING = "Olá! Sou seu assistente virtual. Como posso ajudá-lo hoje?"

INFO_TEXT = (
    "Aqui estão algumas informações gerais sobre a plataforma:\n\n"
    '• Você pode fazer indicações através da aba "Indicações"\n'
    '• Acompanhe seus clientes na aba "Clientes"\n'
    '• Veja seus relatórios e comissões na aba "Relatórios"\n'
    "• Acesse materiais de apoio para suas vendas\n\n"
    "Como mais posso ajudar?"
)

_DOUBTS: list[tuple[str, str, list[str], str]] = [
    (
        "referrals",
        "Como fazer indicações",
        ["indicações", "indicacoes"],
        "📋 **Como fazer indicações:**\n\n"
        '1. Acesse a aba "Indicações" no menu lateral\n'
        '2. Clique em "Nova Indicação"\n'
        "3. Preencha os dados do cliente (use o campo CNPJ para buscar automaticamente!)\n"
        "4. Selecione o produto de interesse\n"
        "5. Envie a indicação\n\n"
        "Você receberá notificações sobre o andamento da sua indicação!\n\n"
        "Posso ajudar com mais alguma coisa?",
    ),
    (
        "clients",
        "Acompanhar clientes",
        ["cliente"],
        "👥 **Acompanhar clientes:**\n\n"
        '• Acesse a aba "Clientes" para ver todos os seus clientes indicados\n'
        "• Veja o status atual de cada cliente no funil de vendas\n"
        "• Acompanhe a temperatura do negócio (frio, morno, quente)\n"
        "• Receba notificações sobre mudanças importantes\n\n"
        "O que mais você gostaria de saber?",
    ),
    (
        "commissions",
        "Comissões",
        ["comissões", "comissoes"],
        "💰 **Sobre comissões:**\n\n"
        "• As comissões são calculadas automaticamente\n"
        '• Você pode acompanhar na aba "Relatórios"\n'
        "• Pagamentos são realizados mensalmente\n"
        "• Você receberá um relatório detalhado por email\n\n"
        "Tem mais alguma dúvida?",
    ),
    (
        "materials",
        "Material de apoio",
        ["material"],
        "📚 **Material de apoio:**\n\n"
        '• Acesse a aba "Material de Apoio"\n'
        "• Encontre apresentações, vídeos e documentos\n"
        "• Todo material está organizado por produto\n"
        "• Baixe e compartilhe com seus clientes\n\n"
        "Quer saber mais alguma coisa?",
    ),
]


def stock_pitch(product: Product) -> str:
    """Rule-based sales pitch shown when a product is picked in the pitch flow."""
    name = product.name.lower()
    if "folha" in name:
        return (
            "💼 **Pitch: Folha de Pagamento**\n\n"
            "🎯 **Abertura:**\n"
            "Você sabia que pode reduzir até 40% dos custos com folha de pagamento "
            "e ainda aumentar a satisfação dos colaboradores?\n\n"
            "✨ **Benefícios:**\n"
            "• Processamento automatizado e sem erros\n"
            "• Conformidade garantida com a legislação\n"
            "• Relatórios em tempo real\n"
            "• Integração completa com sistemas de RH\n\n"
            "📞 **Call to Action:**\n"
            "Que tal agendar uma demonstração gratuita?"
        )
    if "benefício" in name or "beneficio" in name:
        return (
            "🎁 **Pitch: Benefícios Flexíveis**\n\n"
            "🎯 **Abertura:**\n"
            "E se seus colaboradores pudessem escolher os benefícios que realmente "
            "fazem sentido para eles?\n\n"
            "✨ **Benefícios:**\n"
            "• Cartão multi-benefícios em um só lugar\n"
            "• Flexibilidade total para os colaboradores\n"
            "• Gestão 100% digital e automatizada\n\n"
            "📞 **Call to Action:**\n"
            "Posso fazer uma simulação personalizada para sua empresa?"
        )
    return (
        f"✨ **Pitch: {product.name}**\n\n"
        f"{product.description}\n\n"
        "🎯 **Por que escolher a nossa solução?**\n"
        "• Tecnologia de ponta\n"
        "• Suporte especializado\n"
        "• Implementação rápida\n"
        "• ROI comprovado\n\n"
        "Vamos conversar sobre como isso pode transformar seu negócio?"
    )


def _back_option() -> FlowOption:
    return FlowOption(
        id="back", label=BACK_LABEL, target_flow=INITIAL_FLOW, keywords=BACK_KEYWORDS
    )


def _pitch_products(products: list[Product]) -> list[Product]:
    # Longest name first; typed text resolves to the first option it contains.
    seen: set[str] = set()
    usable: list[Product] = []
    for p in products:
        key = p.name.strip().lower()
        if not key or key in seen:
            logger.warning(
                "Product %r has a blank or repeated name; no pitch option", p.id
            )
            continue
        seen.add(key)
        usable.append(p)
    return sorted(usable, key=lambda p: -len(p.name.strip()))


def build_default_catalog(products: list[Product]) -> FlowCatalog:
    """Stock decision tree: main menu, FAQ, per-product pitches."""
    initial = FlowNode(
        flow_id=INITIAL_FLOW,
        name="Menu Inicial",
        prompt_text=GREETING,
        options=[
            FlowOption(
                id="doubts",
                label="Tirar dúvidas",
                target_flow="doubts",
                keywords=["dúvida", "duvida"],
            ),
            FlowOption(
                id="pitch",
                label="Pitch de vendas",
                target_flow=PITCH_FLOW,
                keywords=["pitch", "venda"],
            ),
            FlowOption(
                id="info",
                label="Informações gerais",
                response_text=INFO_TEXT,
                keywords=["informações", "informacoes", "geral"],
            ),
        ],
    )

    doubts = FlowNode(
        flow_id="doubts",
        name="Dúvidas Frequentes",
        prompt_text="Entendo! Sobre qual assunto você tem dúvidas?",
        options=[
            FlowOption(id=oid, label=label, response_text=text, keywords=keywords)
            for oid, label, keywords, text in _DOUBTS
        ]
        + [_back_option()],
    )

    pitch = FlowNode(
        flow_id=PITCH_FLOW,
        name="Pitches de Venda",
        prompt_text="Perfeito! Para qual produto você gostaria de ver o pitch de vendas?",
        options=[
            FlowOption(
                id=f"product-{p.id}",
                label=p.name,
                response_text=stock_pitch(p),
            )
            for p in _pitch_products(products)
        ]
        + [_back_option()],
    )

    return FlowCatalog(version=0, nodes=[initial, doubts, pitch])


def load_products(path: str) -> list[Product]:
    if not path:
        return []
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return [Product.model_validate(item) for item in raw]


class CatalogStore:
    """Holds the catalog (and its engine) used by live conversations.

    Loaded once at start; replaced only by an explicit publish.
    """

    def __init__(self, products: list[Product], extra_options=None):
        self._products = list(products)
        self._extra_options = extra_options
        self._engine = self._default_engine()

    def _default_engine(self) -> FlowEngine:
        try:
            return FlowEngine(build_default_catalog(self._products), self._extra_options)
        except CatalogIntegrityError as e:
            logger.error(
                "Default catalog is invalid with the configured products (%s); "
                "starting without product pitches",
                e,
            )
            return FlowEngine(build_default_catalog([]), self._extra_options)

    @property
    def products(self) -> list[Product]:
        return list(self._products)

    @property
    def catalog(self) -> FlowCatalog:
        return self._engine.catalog

    def engine(self) -> FlowEngine:
        return self._engine

    def swap(self, catalog: FlowCatalog) -> None:
        # FlowEngine validates; a bad catalog never replaces the live one.
        self._engine = FlowEngine(catalog, self._extra_options)
        logger.info("Flow catalog version %s is now live", catalog.version)

    async def load(self) -> None:
        async with async_session_maker() as session:
            row = await get_published_catalog(session=session)
        if row is None:
            logger.info("No published flow catalog; using the default catalog")
            return
        self.swap(catalog_from_row(row.version, row.catalog_data))


def catalog_from_row(version: int, data: dict) -> FlowCatalog:
    return FlowCatalog.model_validate({**data, "version": version})


async def save_draft(*, session: AsyncSession, nodes: list[FlowNode]) -> int:
    catalog = FlowCatalog(nodes=nodes)
    row = await create_catalog_draft(
        session=session, catalog_data=catalog.model_dump(exclude={"version"})
    )
    return row.version


async def publish(
    *, session: AsyncSession, version: int, store: CatalogStore
) -> FlowCatalog:
    row = await get_catalog_version(session=session, version=version)
    if row is None:
        raise LookupError(f"Catalog version {version} not found")

    catalog = catalog_from_row(row.version, row.catalog_data)
    problems = catalog.problems()
    if problems:
        logger.warning(
            "Refusing to publish catalog version %s: %s", version, "; ".join(problems)
        )
        raise CatalogIntegrityError(problems)

    await mark_catalog_published(session=session, row=row)
    store.swap(catalog)
    return catalog
