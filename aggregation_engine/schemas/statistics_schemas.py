from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import Field

from aggregation_engine.core.enums import JobCategory, JobStatus, JobType
from .base import CamelModel


class StatisticsQuery(CamelModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    category: Optional[str] = None


class CategoryCount(CamelModel):
    category: JobCategory
    count: int
    percentage: float


class TypeCount(CamelModel):
    type: JobType
    count: int
    percentage: float


class JobTiming(CamelModel):
    id: str = ""
    name: str = ""
    execution_time: int = 0


class JobActivity(CamelModel):
    id: str = ""
    name: str = ""
    runs_count: int = 0


class JobVolume(CamelModel):
    id: str = ""
    name: str = ""
    records_processed: int = 0


class PerformanceMetrics(CamelModel):
    fastest_job: JobTiming = Field(default_factory=JobTiming)
    slowest_job: JobTiming = Field(default_factory=JobTiming)
    most_active_job: JobActivity = Field(default_factory=JobActivity)
    biggest_job: JobVolume = Field(default_factory=JobVolume)


class RecentActivity(CamelModel):
    job_id: str
    job_name: str
    status: JobStatus
    execution_time: int
    records_processed: int
    completed_at: datetime


class AggregationStatistics(CamelModel):
    """Aggregated view over the jobs matching a statistics query."""
    total_jobs: int = 0
    active_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    total_records_processed: int = 0
    total_bytes_processed: int = 0
    average_execution_time: float = 0.0
    success_rate: float = 0.0
    jobs_by_category: List[CategoryCount] = Field(default_factory=list)
    jobs_by_type: List[TypeCount] = Field(default_factory=list)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    recent_activity: List[RecentActivity] = Field(default_factory=list)


class ServiceStats(CamelModel):
    total_jobs: int
    running_jobs: int
    queued_jobs: int
    high_priority_queue: int
    normal_priority_queue: int
    low_priority_queue: int
    max_concurrent_jobs: int
    templates: int
    incremental_states: int
    memory_usage: Dict[str, Any]
    uptime: float
