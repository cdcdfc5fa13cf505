from typing import Optional, Dict, Any, List
from datetime import datetime
from uuid import uuid4
from pydantic import Field

from aggregation_engine.core.enums import (
    ConnectorKind,
    FilterCondition,
    FilterOperator,
    JobStatus,
    JobType,
    ScheduleType,
    SortDirection,
)
from aggregation_engine.utils.date_utils import DEFAULT_TIMEZONE, get_current_timestamp
from .base import CamelModel


class Schedule(CamelModel):
    """When and how urgently a job runs."""
    type: ScheduleType = ScheduleType.ONCE
    expression: Optional[str] = Field(default=None, description="Cron expression, required for cron schedules")
    interval: Optional[int] = Field(default=None, gt=0, description="Interval in milliseconds")
    timezone: str = DEFAULT_TIMEZONE
    enabled: bool = True
    priority: int = Field(default=5, ge=1, le=10)


class ConnectionConfig(CamelModel):
    url: Optional[str] = Field(default=None, description="SQLAlchemy database URL")
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class FilterRule(CamelModel):
    """A field predicate used for source filters, having clauses and operation conditions."""
    field: str
    operator: FilterOperator = FilterOperator.EQ
    value: Any = None
    condition: Optional[FilterCondition] = None


class OrderBy(CamelModel):
    field: str
    direction: SortDirection = SortDirection.ASC


class Operation(CamelModel):
    type: str = Field(description="Aggregate operation name, e.g. sum, avg, percentile")
    field: str = "*"
    alias: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[FilterRule] = None

    @property
    def output_name(self) -> str:
        return self.alias or f"{self.type}_{self.field}"


class Transformation(CamelModel):
    operations: List[Operation] = Field(default_factory=list)
    group_by: List[str] = Field(default_factory=list)
    order_by: List[OrderBy] = Field(default_factory=list)
    having: List[FilterRule] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)


class SourceConfig(CamelModel):
    kind: ConnectorKind = ConnectorKind.COLUMNAR_STORE
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    query: Optional[str] = None
    table: Optional[str] = None
    topic: Optional[str] = None
    endpoint: Optional[str] = None
    path: Optional[str] = None
    filters: List[FilterRule] = Field(default_factory=list)
    incremental: bool = False
    incremental_field: Optional[str] = None
    batch_size: Optional[int] = Field(default=None, gt=0)


class TargetConfig(CamelModel):
    kind: ConnectorKind = ConnectorKind.COLUMNAR_STORE
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    table: Optional[str] = None
    collection: Optional[str] = None
    path: Optional[str] = None
    format: Optional[str] = None


class JobResult(CamelModel):
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    bytes_processed: int = 0
    execution_time: int = Field(default=0, description="Run duration in milliseconds")
    start_time: datetime
    end_time: datetime


class Job(CamelModel):
    """An aggregation job definition together with its mutable run state."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: JobType
    status: JobStatus = JobStatus.PENDING
    schedule: Schedule = Field(default_factory=Schedule)
    source: SourceConfig
    target: TargetConfig
    transformation: Transformation
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=get_current_timestamp)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    run_count: int = 0


class JobCreate(CamelModel):
    """Schema for creating aggregation jobs."""
    name: str = Field(min_length=1, max_length=200)
    type: JobType = JobType.ON_DEMAND
    schedule: Schedule = Field(default_factory=Schedule)
    source: SourceConfig
    target: TargetConfig
    transformation: Transformation
    is_active: bool = True


class ScheduleUpdate(CamelModel):
    type: Optional[ScheduleType] = None
    expression: Optional[str] = None
    interval: Optional[int] = Field(default=None, gt=0)
    timezone: Optional[str] = None
    enabled: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=1, le=10)


class TransformationUpdate(CamelModel):
    operations: Optional[List[Operation]] = None
    group_by: Optional[List[str]] = None
    order_by: Optional[List[OrderBy]] = None
    having: Optional[List[FilterRule]] = None
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)


class JobUpdate(CamelModel):
    """Schema for updating aggregation jobs; unset fields are left untouched."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_active: Optional[bool] = None
    schedule: Optional[ScheduleUpdate] = None
    transformation: Optional[TransformationUpdate] = None


class JobFilter(CamelModel):
    type: Optional[JobType] = None
    status: Optional[JobStatus] = None
    category: Optional[str] = None
    search: Optional[str] = None
    active_only: bool = False
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class RunJobRequest(CamelModel):
    parameters: Dict[str, Any] = Field(default_factory=dict)
    high_priority: bool = False


class IncrementalState(CamelModel):
    job_id: str
    last_processed_value: Any = None
    last_processed_time: datetime = Field(default_factory=get_current_timestamp)
    watermark: Any = None
    checkpoint_data: Dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_at: datetime = Field(default_factory=get_current_timestamp)
    updated_at: datetime = Field(default_factory=get_current_timestamp)
