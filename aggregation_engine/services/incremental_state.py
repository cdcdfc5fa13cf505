"""
Incremental state store.

Tracks, per job, the highest value of the incremental field seen so far.
Extraction only asks the source for rows past that watermark.
"""
import threading
from typing import Any, Dict, List, Optional, Sequence

from aggregation_engine.domain.repositories.job_repository import IIncrementalStateRepository
from aggregation_engine.infrastructure.db.repositories.memory_repository import InMemoryIncrementalStateRepository
from aggregation_engine.schemas.job_schemas import IncrementalState
from aggregation_engine.transformers.aggregator import compare_values
from aggregation_engine.utils.date_utils import get_current_timestamp
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)


def max_field_value(records: Sequence[Dict[str, Any]], field: str) -> Any:
    """Largest non-null value of ``field`` in natural order, or None."""
    current = None
    for record in records:
        value = record.get(field)
        if value is None:
            continue
        if current is None or compare_values(value, current) > 0:
            current = value
    return current


class IncrementalStateStore:
    """Thread-safe watermark store keyed by job id."""

    def __init__(self, repository: Optional[IIncrementalStateRepository] = None):
        self.repository = repository or InMemoryIncrementalStateRepository()
        self._lock = threading.RLock()

    def init(self, job_id: str) -> IncrementalState:
        """Create an empty state for a job, keeping an existing one."""
        with self._lock:
            state = self.repository.get(job_id)
            if state is None:
                state = self.repository.put(IncrementalState(job_id=job_id))
                logger.debug(f"Initialized incremental state for job {job_id}")
            return state.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[IncrementalState]:
        with self._lock:
            state = self.repository.get(job_id)
            return state.model_copy(deep=True) if state else None

    def last_processed_value(self, job_id: str) -> Any:
        state = self.get(job_id)
        return state.last_processed_value if state else None

    def advance(self, job_id: str, records: Sequence[Dict[str, Any]], field: str) -> Optional[IncrementalState]:
        """
        Move the watermark forward to the maximum ``field`` value in ``records``.

        The stored value is only replaced when the new maximum is strictly
        greater, so the watermark never moves backwards.

        Returns:
            Updated state, or None when nothing changed
        """
        if not records:
            return None

        new_value = max_field_value(records, field)
        if new_value is None:
            return None

        with self._lock:
            state = self.repository.get(job_id) or IncrementalState(job_id=job_id)
            if state.last_processed_value is not None and compare_values(new_value, state.last_processed_value) <= 0:
                return None

            now = get_current_timestamp()
            state.last_processed_value = new_value
            state.watermark = new_value
            state.last_processed_time = now
            state.updated_at = now
            state.checkpoint_data = {"records": len(records)}
            state.version += 1
            self.repository.put(state)

        logger.debug(f"Incremental state for job {job_id} advanced to {new_value!r}")
        return state.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self.repository.delete(job_id)

    def list(self) -> List[IncrementalState]:
        with self._lock:
            return [state.model_copy(deep=True) for state in self.repository.list()]

    def count(self) -> int:
        with self._lock:
            return len(self.repository.list())
