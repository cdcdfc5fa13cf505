from . import aggregation

__all__ = ["aggregation"]
