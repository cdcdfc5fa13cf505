"""
Placeholder connector for kinds that have no implementation yet.
"""

from typing import Any, Dict, List, Optional

from aggregation_engine.core.exceptions import UnsupportedOperationError
from aggregation_engine.schemas.job_schemas import SourceConfig, TargetConfig
from aggregation_engine.utils.logger import get_logger
from .base import Connector

logger = get_logger(__name__)


class UnsupportedConnector(Connector):
    """Registered for a kind that is accepted in job definitions but cannot run."""

    def __init__(self, kind: str):
        self.kind = kind

    def extract(
        self,
        source: SourceConfig,
        parameters: Optional[Dict[str, Any]] = None,
        last_processed_value: Any = None,
    ) -> List[Dict[str, Any]]:
        logger.warning(f"Extraction from {self.kind} is not implemented")
        raise UnsupportedOperationError(self.kind, "extraction")

    def load(self, target: TargetConfig, records: List[Dict[str, Any]]) -> int:
        logger.warning(f"Loading into {self.kind} is not implemented")
        raise UnsupportedOperationError(self.kind, "loading")
