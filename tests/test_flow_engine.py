import pytest

from app.core.errors import CatalogIntegrityError, UnknownOptionError
from app.models.chat_metric import MessageType
from app.schemas.catalog import INITIAL_FLOW, FlowCatalog, FlowNode, FlowOption
from app.schemas.chat import TurnOption
from app.services.flow_catalog import GREETING
from app.services.flow_engine import FALLBACK_TEXT, FlowEngine, OptionSelection


# ----------------------------------------------------------------------------
# Greeting
# ----------------------------------------------------------------------------


def test_start_offers_main_menu(engine, session):
    resolution = engine.start(session)

    assert resolution.turn.role == MessageType.bot
    assert resolution.turn.content == GREETING
    assert resolution.turn.option_labels() == [
        "Tirar dúvidas",
        "Pitch de vendas",
        "Informações gerais",
    ]
    assert resolution.session.flow_id == INITIAL_FLOW
    assert resolution.session.turns == (resolution.turn,)


def test_extra_options_are_appended_to_their_node(catalog, session):
    extra = TurnOption(id="ai:enable", label="🤖 Modo IA")
    engine = FlowEngine(catalog, {INITIAL_FLOW: (extra,)})

    labels = engine.start(session).turn.option_labels()

    assert labels[-1] == "🤖 Modo IA"
    doubts = engine.resolve(session, OptionSelection("doubts"))
    assert "🤖 Modo IA" not in doubts.turn.option_labels()


# ----------------------------------------------------------------------------
# Transitions
# ----------------------------------------------------------------------------


class TestResolve:
    def test_redirect_moves_cursor_and_shows_target_prompt(self, engine, session):
        resolution = engine.resolve(session, OptionSelection("doubts"))

        assert resolution.session.flow_id == "doubts"
        assert resolution.previous_flow == INITIAL_FLOW
        assert resolution.turn.content == engine.node("doubts").prompt_text
        assert "Voltar" in resolution.turn.option_labels()

    def test_response_option_keeps_cursor_and_is_idempotent(self, engine, session):
        at_doubts = engine.resolve(session, OptionSelection("doubts")).session

        first = engine.resolve(at_doubts, OptionSelection("clients"))
        second = engine.resolve(first.session, OptionSelection("clients"))

        assert first.session.flow_id == "doubts"
        assert second.session.flow_id == "doubts"
        assert first.turn.content == second.turn.content
        assert first.turn.option_labels() == second.turn.option_labels()

    def test_user_turn_precedes_bot_turn(self, engine, session):
        resolution = engine.resolve(session, OptionSelection("pitch"))

        user_turn, bot_turn = resolution.session.turns[-2:]
        assert user_turn.role == MessageType.user
        assert user_turn.content == "Pitch de vendas"
        assert bot_turn is resolution.turn

    def test_input_session_is_not_mutated(self, engine, session):
        engine.resolve(session, OptionSelection("doubts"))

        assert session.flow_id == INITIAL_FLOW
        assert session.turns == ()

    def test_unknown_option_raises(self, engine, session):
        with pytest.raises(UnknownOptionError) as excinfo:
            engine.resolve(session, OptionSelection("nope"))

        assert excinfo.value.flow_id == INITIAL_FLOW
        assert excinfo.value.option_id == "nope"

    def test_back_option_returns_to_menu(self, engine, session):
        at_pitch = engine.resolve(session, OptionSelection("pitch")).session

        resolution = engine.resolve(at_pitch, OptionSelection("back"))

        assert resolution.session.flow_id == INITIAL_FLOW
        assert resolution.turn.content == GREETING


# ----------------------------------------------------------------------------
# Free text
# ----------------------------------------------------------------------------


class TestKeywordMatching:
    def test_label_matches_case_insensitively(self, engine, session):
        resolution = engine.resolve(session, "Quero TIRAR DÚVIDAS, por favor")

        assert resolution.session.flow_id == "doubts"
        assert resolution.option.id == "doubts"

    def test_keyword_matches(self, engine, session):
        resolution = engine.resolve(session, "me mostra um pitch")

        assert resolution.session.flow_id == "pitch"

    def test_first_option_in_source_order_wins(self, engine, session):
        at_doubts = engine.resolve(session, OptionSelection("doubts")).session

        resolution = engine.resolve(at_doubts, "material sobre comissões")

        assert resolution.option.id == "commissions"

    def test_no_match_falls_back_and_reoffers_options(self, engine, session):
        at_doubts = engine.resolve(session, OptionSelection("doubts")).session

        resolution = engine.resolve(at_doubts, "qual a previsão do tempo?")

        assert resolution.option is None
        assert resolution.turn.content == FALLBACK_TEXT
        assert resolution.session.flow_id == "doubts"
        assert resolution.turn.option_labels() == [
            o.label for o in engine.node("doubts").options
        ]

    def test_blank_text_falls_back(self, engine, session):
        resolution = engine.resolve(session, "   ")

        assert resolution.turn.content == FALLBACK_TEXT


# ----------------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------------


def test_dangling_cursor_falls_back_to_menu(engine, session):
    stale = session.model_copy(update={"flow_id": "removed-flow"})

    resolution = engine.resolve(stale, OptionSelection("pitch"))

    assert resolution.previous_flow == INITIAL_FLOW
    assert resolution.session.flow_id == "pitch"


def test_engine_rejects_invalid_catalog():
    broken = FlowCatalog(
        nodes=[
            FlowNode(
                flow_id=INITIAL_FLOW,
                prompt_text="Olá",
                options=[FlowOption(id="go", label="Ir", target_flow="missing")],
            )
        ]
    )

    with pytest.raises(CatalogIntegrityError):
        FlowEngine(broken)
