"""
Connector registry.

Maps a source/target ``kind`` to the connector instance that serves it.
The registry is built once at startup and handed to the job executor.
"""

from typing import Dict, Optional, Union

from sqlalchemy.engine import Engine

from aggregation_engine.core.config import ColumnarStoreSettings
from aggregation_engine.core.enums import ConnectorKind
from aggregation_engine.core.exceptions import UnsupportedOperationError
from aggregation_engine.utils.logger import get_logger
from .base import Connector
from .columnar_store import ColumnarStoreConnector
from .unsupported import UnsupportedConnector

logger = get_logger(__name__)

KindLike = Union[ConnectorKind, str]


def _kind_value(kind: KindLike) -> str:
    return kind.value if isinstance(kind, ConnectorKind) else str(kind)


class ConnectorRegistry:
    """Lookup table of connectors keyed by kind."""

    def __init__(self):
        self._connectors: Dict[str, Connector] = {}

    def register(self, kind: KindLike, connector: Connector) -> None:
        """
        Register a connector for a kind, replacing any previous one.

        Args:
            kind: Source/target kind identifier
            connector: Connector instance serving that kind
        """
        key = _kind_value(kind)
        self._connectors[key] = connector
        logger.info(f"Registered connector: {key} -> {connector.__class__.__name__}")

    def get(self, kind: KindLike) -> Connector:
        key = _kind_value(kind)
        connector = self._connectors.get(key)
        if connector is None:
            raise UnsupportedOperationError(key, "lookup", message=f"No connector registered for kind '{key}'")
        return connector

    def list_registered(self) -> Dict[str, str]:
        return {kind: connector.__class__.__name__ for kind, connector in self._connectors.items()}

    def close(self) -> None:
        for connector in self._connectors.values():
            connector.close()


def create_default_registry(
    settings: Optional[ColumnarStoreSettings] = None,
    engine: Optional[Engine] = None,
) -> ConnectorRegistry:
    """Registry with the columnar store connector and placeholders for every other kind."""
    registry = ConnectorRegistry()
    registry.register(ConnectorKind.COLUMNAR_STORE, ColumnarStoreConnector(settings=settings, engine=engine))
    for kind in ConnectorKind:
        if kind != ConnectorKind.COLUMNAR_STORE:
            registry.register(kind, UnsupportedConnector(kind.value))
    return registry
