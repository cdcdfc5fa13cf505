from .memory_repository import InMemoryIncrementalStateRepository, InMemoryJobRepository

__all__ = ["InMemoryJobRepository", "InMemoryIncrementalStateRepository"]
