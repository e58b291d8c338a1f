from app.models.base import Base
from app.models.chat_metric import ChatMetric, MessageType
from app.models.flow_catalog import FlowCatalogVersion

__all__ = [
    "Base",
    "ChatMetric",
    "MessageType",
    "FlowCatalogVersion",
]
