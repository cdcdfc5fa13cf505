from abc import ABC, abstractmethod
from typing import List, Optional

from aggregation_engine.schemas.job_schemas import IncrementalState, Job


class IJobRepository(ABC):
    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    def put(self, job: Job) -> Job:
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        pass

    @abstractmethod
    def list(self) -> List[Job]:
        pass


class IIncrementalStateRepository(ABC):
    @abstractmethod
    def get(self, job_id: str) -> Optional[IncrementalState]:
        pass

    @abstractmethod
    def put(self, state: IncrementalState) -> IncrementalState:
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        pass

    @abstractmethod
    def list(self) -> List[IncrementalState]:
        pass
