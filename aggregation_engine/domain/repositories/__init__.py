from .job_repository import IIncrementalStateRepository, IJobRepository

__all__ = ["IJobRepository", "IIncrementalStateRepository"]
