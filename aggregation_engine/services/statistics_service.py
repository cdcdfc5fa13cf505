"""
Job statistics.

Category is not stored on a job; it is inferred from keywords in the job name.
"""
from collections import Counter
from typing import List, Optional

from aggregation_engine.core.enums import JobCategory, JobStatus
from aggregation_engine.schemas.job_schemas import Job
from aggregation_engine.schemas.statistics_schemas import (
    AggregationStatistics,
    CategoryCount,
    JobActivity,
    JobTiming,
    JobVolume,
    PerformanceMetrics,
    RecentActivity,
    StatisticsQuery,
    TypeCount,
)
from aggregation_engine.services.job_registry import JobRegistry
from aggregation_engine.utils.date_utils import ensure_aware

RECENT_ACTIVITY_LIMIT = 10

CATEGORY_KEYWORDS = (
    (JobCategory.OPERATIONAL, ("operation", "terminal")),
    (JobCategory.FINANCIAL, ("financ", "revenue")),
    (JobCategory.EQUIPMENT, ("equipment",)),
    (JobCategory.SAFETY, ("safety",)),
    (JobCategory.ENVIRONMENTAL, ("environment",)),
    (JobCategory.CUSTOMER, ("customer", "client")),
)


def infer_category(name: str) -> JobCategory:
    lowered = name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return JobCategory.CUSTOM


def _percentage(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


def build_performance_metrics(completed: List[Job]) -> PerformanceMetrics:
    metrics = PerformanceMetrics()
    timed = [job for job in completed if job.result and job.result.execution_time]
    if timed:
        fastest = min(timed, key=lambda job: job.result.execution_time)
        slowest = max(timed, key=lambda job: job.result.execution_time)
        metrics.fastest_job = JobTiming(id=fastest.id, name=fastest.name, execution_time=fastest.result.execution_time)
        metrics.slowest_job = JobTiming(id=slowest.id, name=slowest.name, execution_time=slowest.result.execution_time)

    active = [job for job in completed if job.run_count > 0]
    if active:
        most_active = max(active, key=lambda job: job.run_count)
        metrics.most_active_job = JobActivity(id=most_active.id, name=most_active.name, runs_count=most_active.run_count)

    with_results = [job for job in completed if job.result]
    if with_results:
        biggest = max(with_results, key=lambda job: job.result.records_processed)
        metrics.biggest_job = JobVolume(
            id=biggest.id, name=biggest.name, records_processed=biggest.result.records_processed
        )
    return metrics


def compute_statistics(jobs: List[Job], query: Optional[StatisticsQuery] = None) -> AggregationStatistics:
    query = query or StatisticsQuery()

    if query.date_from:
        date_from = ensure_aware(query.date_from)
        jobs = [job for job in jobs if job.created_at >= date_from]
    if query.date_to:
        date_to = ensure_aware(query.date_to)
        jobs = [job for job in jobs if job.created_at <= date_to]
    if query.category:
        category = query.category.lower()
        jobs = [job for job in jobs if category in job.name.lower()]

    total = len(jobs)
    completed = [job for job in jobs if job.status == JobStatus.COMPLETED]
    failed = [job for job in jobs if job.status == JobStatus.FAILED]
    execution_times = [job.result.execution_time for job in completed if job.result and job.result.execution_time]

    categories = Counter(infer_category(job.name) for job in jobs)
    types = Counter(job.type for job in jobs)

    recent = sorted(
        (job for job in completed if job.completed_at),
        key=lambda job: job.completed_at,
        reverse=True,
    )[:RECENT_ACTIVITY_LIMIT]

    return AggregationStatistics(
        total_jobs=total,
        active_jobs=sum(1 for job in jobs if job.is_active),
        completed_jobs=len(completed),
        failed_jobs=len(failed),
        total_records_processed=sum(job.result.records_processed for job in completed if job.result),
        total_bytes_processed=sum(job.result.bytes_processed for job in completed if job.result),
        average_execution_time=sum(execution_times) / len(execution_times) if execution_times else 0.0,
        success_rate=_percentage(len(completed), total),
        jobs_by_category=[
            CategoryCount(category=category, count=count, percentage=_percentage(count, total))
            for category, count in categories.items()
        ],
        jobs_by_type=[
            TypeCount(type=job_type, count=count, percentage=_percentage(count, total))
            for job_type, count in types.items()
        ],
        performance_metrics=build_performance_metrics(completed),
        recent_activity=[
            RecentActivity(
                job_id=job.id,
                job_name=job.name,
                status=job.status,
                execution_time=job.result.execution_time if job.result else 0,
                records_processed=job.result.records_processed if job.result else 0,
                completed_at=job.completed_at,
            )
            for job in recent
        ],
    )


class StatisticsService:
    def __init__(self, registry: JobRegistry):
        self.registry = registry

    def get_statistics(self, query: Optional[StatisticsQuery] = None) -> AggregationStatistics:
        return compute_statistics(self.registry.list_all(), query)
