from .base import Connector
from .columnar_store import ColumnarStoreConnector, build_extraction_query
from .factory import ConnectorRegistry, create_default_registry
from .unsupported import UnsupportedConnector

__all__ = [
    "Connector",
    "ColumnarStoreConnector",
    "ConnectorRegistry",
    "UnsupportedConnector",
    "build_extraction_query",
    "create_default_registry",
]
