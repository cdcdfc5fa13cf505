from enum import Enum


class JobType(str, Enum):
    """Aggregation job types."""
    SCHEDULED = "scheduled"
    REALTIME = "realtime"
    ON_DEMAND = "on_demand"
    EVENT_DRIVEN = "event_driven"


class JobStatus(str, Enum):
    """Aggregation job status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DISABLED = "disabled"


class ScheduleType(str, Enum):
    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"
    EVENT = "event"


class ConnectorKind(str, Enum):
    """Source and target kinds a connector can be registered for."""
    COLUMNAR_STORE = "columnar_store"
    RELATIONAL_STORE = "relational_store"
    MESSAGE_STREAM = "message_stream"
    HTTP_API = "http_api"
    FILE = "file"
    KEY_VALUE_STORE = "key_value_store"


class OperationType(str, Enum):
    """Aggregate operations understood by the transformation engine."""
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    MEDIAN = "median"
    STDDEV = "stddev"
    VARIANCE = "variance"
    PERCENTILE = "percentile"
    FIRST_VALUE = "first_value"
    LAST_VALUE = "last_value"


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"


class FilterCondition(str, Enum):
    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class PriorityTier(str, Enum):
    """Dispatcher queue tiers derived from a 1-10 priority score."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class JobCategory(str, Enum):
    """Job categories inferred from job names for statistics."""
    OPERATIONAL = "operational"
    FINANCIAL = "financial"
    EQUIPMENT = "equipment"
    SAFETY = "safety"
    ENVIRONMENTAL = "environmental"
    CUSTOMER = "customer"
    CUSTOM = "custom"
