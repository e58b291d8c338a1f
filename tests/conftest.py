import pytest

from app.schemas.catalog import Product
from app.schemas.chat import ChatSession, IdentityContext
from app.services.flow_catalog import build_default_catalog
from app.services.flow_engine import FlowEngine


@pytest.fixture
def products():
    return [
        Product(
            id="payroll",
            name="Folha de Pagamento",
            description="Gestão completa da folha.",
        ),
        Product(
            id="benefits",
            name="Benefícios Flexíveis",
            description="Cartão multi-benefícios.",
        ),
    ]


@pytest.fixture
def catalog(products):
    return build_default_catalog(products)


@pytest.fixture
def engine(catalog):
    return FlowEngine(catalog)


@pytest.fixture
def identity():
    return IdentityContext(user_id="user-1", user_name="Ana", user_role="partner")


@pytest.fixture
def session(identity):
    return ChatSession(identity=identity)
