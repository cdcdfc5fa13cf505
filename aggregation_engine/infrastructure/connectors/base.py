"""
Base connector interface.

A connector is the extract/load strategy bound to a source or target
``kind``. The job executor only ever talks to this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from aggregation_engine.schemas.job_schemas import SourceConfig, TargetConfig


class Connector(ABC):
    """
    Abstract base class for source/target connectors.

    Implementations are synchronous and may block on I/O; the executor
    calls them from a worker thread.
    """

    kind: str = "unknown"

    @abstractmethod
    def extract(
        self,
        source: SourceConfig,
        parameters: Optional[Dict[str, Any]] = None,
        last_processed_value: Any = None,
    ) -> List[Dict[str, Any]]:
        """
        Pull records from the source.

        Args:
            source: Source configuration of the job
            parameters: Run parameters substituted into ``{{key}}`` placeholders
            last_processed_value: Incremental watermark; only newer rows are returned

        Returns:
            List of records as dictionaries
        """

    @abstractmethod
    def load(self, target: TargetConfig, records: List[Dict[str, Any]]) -> int:
        """
        Write records to the target.

        Returns:
            Number of records inserted
        """

    def close(self) -> None:
        """Release any pooled resources."""
