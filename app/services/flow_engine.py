from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from app.core.errors import UnknownOptionError
from app.models.chat_metric import MessageType
from app.schemas.catalog import INITIAL_FLOW, FlowCatalog, FlowNode, FlowOption
from app.schemas.chat import ChatSession, ChatTurn, TurnOption

FALLBACK_TEXT = (
    "Desculpe, não entendi sua pergunta. Por favor, escolha uma das opções "
    "disponíveis ou reformule sua pergunta."
)


@dataclass(frozen=True, slots=True)
class OptionSelection:
    """A button click; the option id is already known."""

    option_id: str


@dataclass(frozen=True, slots=True)
class Resolution:
    turn: ChatTurn
    session: ChatSession
    previous_flow: str
    # The option that was clicked or matched by keyword, if any
    option: FlowOption | None = None
    user_turn: ChatTurn | None = None


class FlowEngine:
    """Walks the flow catalog. Pure: no I/O, no mutation of its inputs.

    `extra_options` maps a flow id to buttons appended to every turn rendered
    for that node (e.g. the AI-mode toggle on the main menu). The engine does
    not interpret them; callers handle those ids before calling `resolve`.
    """

    def __init__(
        self,
        catalog: FlowCatalog,
        extra_options: Mapping[str, tuple[TurnOption, ...]] | None = None,
    ):
        catalog.check_integrity()
        self._catalog = catalog
        self._extra = dict(extra_options or {})

    @property
    def catalog(self) -> FlowCatalog:
        return self._catalog

    def node(self, flow_id: str) -> FlowNode:
        # A cursor left dangling by a catalog swap falls back to the menu.
        return self._catalog.get(flow_id) or self._catalog.get(INITIAL_FLOW)

    def options_for(self, node: FlowNode) -> tuple[TurnOption, ...]:
        own = tuple(TurnOption(id=o.id, label=o.label) for o in node.options)
        return own + self._extra.get(node.flow_id, ())

    def bot_turn(self, content: str, node: FlowNode) -> ChatTurn:
        return ChatTurn(
            role=MessageType.bot, content=content, options=self.options_for(node)
        )

    def start(self, session: ChatSession) -> Resolution:
        """Greeting turn: the menu prompt with its options."""
        node = self.node(INITIAL_FLOW)
        turn = self.bot_turn(node.prompt_text, node)
        return Resolution(
            turn=turn,
            session=session.with_turns(turn, flow_id=node.flow_id),
            previous_flow=session.flow_id,
        )

    def reoffer(self, session: ChatSession, content: str) -> Resolution:
        """Bot turn with arbitrary text that re-offers the current node's options."""
        node = self.node(session.flow_id)
        turn = self.bot_turn(content, node)
        return Resolution(
            turn=turn,
            session=session.with_turns(turn, flow_id=node.flow_id),
            previous_flow=session.flow_id,
        )

    def resolve(
        self, session: ChatSession, user_input: str | OptionSelection
    ) -> Resolution:
        node = self.node(session.flow_id)

        if isinstance(user_input, OptionSelection):
            option = node.get_option(user_input.option_id)
            if option is None:
                raise UnknownOptionError(node.flow_id, user_input.option_id)
            user_text = option.label
        else:
            user_text = user_input
            option = node.match(user_input)

        user_turn = ChatTurn(role=MessageType.user, content=user_text)

        if option is None:
            next_node = node
            bot_turn = self.bot_turn(FALLBACK_TEXT, node)
        elif option.is_redirect:
            next_node = self.node(option.target_flow)
            bot_turn = self.bot_turn(next_node.prompt_text, next_node)
        else:
            # Showing a canned answer does not consume the menu.
            next_node = node
            bot_turn = self.bot_turn(option.response_text, node)

        return Resolution(
            turn=bot_turn,
            session=session.with_turns(user_turn, bot_turn, flow_id=next_node.flow_id),
            previous_flow=node.flow_id,
            option=option,
            user_turn=user_turn,
        )
