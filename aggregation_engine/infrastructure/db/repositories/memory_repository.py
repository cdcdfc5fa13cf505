"""
In-memory repositories.

State lives in process dictionaries and is lost on restart. Callers are
responsible for locking; the services own the locks around read-modify-write.
"""

from typing import Dict, List, Optional

from aggregation_engine.domain.repositories.job_repository import IIncrementalStateRepository, IJobRepository
from aggregation_engine.schemas.job_schemas import IncrementalState, Job


class InMemoryJobRepository(IJobRepository):
    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def put(self, job: Job) -> Job:
        self._jobs[job.id] = job
        return job

    def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def list(self) -> List[Job]:
        return list(self._jobs.values())


class InMemoryIncrementalStateRepository(IIncrementalStateRepository):
    def __init__(self):
        self._states: Dict[str, IncrementalState] = {}

    def get(self, job_id: str) -> Optional[IncrementalState]:
        return self._states.get(job_id)

    def put(self, state: IncrementalState) -> IncrementalState:
        self._states[state.job_id] = state
        return state

    def delete(self, job_id: str) -> bool:
        return self._states.pop(job_id, None) is not None

    def list(self) -> List[IncrementalState]:
        return list(self._states.values())
