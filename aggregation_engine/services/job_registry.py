"""
Job registry.

Owns job definitions and every status transition of a job. Reads hand out
deep copies so callers never mutate stored state outside the lock.
"""
import threading
from datetime import datetime
from typing import List, Optional, Tuple

from aggregation_engine.core.enums import JobStatus, ScheduleType
from aggregation_engine.core.exceptions import ConflictError, NotFoundError, ValidationException
from aggregation_engine.domain.repositories.job_repository import IJobRepository
from aggregation_engine.infrastructure.background.scheduler import compute_next_run, is_valid_cron
from aggregation_engine.infrastructure.db.repositories.memory_repository import InMemoryJobRepository
from aggregation_engine.schemas.job_schemas import (
    Job,
    JobCreate,
    JobFilter,
    JobResult,
    JobUpdate,
    Schedule,
    SourceConfig,
    Transformation,
)
from aggregation_engine.utils.date_utils import ensure_aware, get_current_timestamp, is_valid_timezone
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)


def validate_schedule(schedule: Schedule) -> None:
    if not is_valid_timezone(schedule.timezone):
        raise ValidationException(f"Unknown timezone: {schedule.timezone}", field="schedule.timezone", value=schedule.timezone)
    if schedule.type == ScheduleType.CRON:
        if not schedule.expression:
            raise ValidationException("Cron schedule requires an expression", field="schedule.expression")
        if not is_valid_cron(schedule.expression):
            raise ValidationException(
                f"Invalid cron expression: {schedule.expression}",
                field="schedule.expression",
                value=schedule.expression,
            )
    if schedule.type == ScheduleType.INTERVAL and not schedule.interval:
        raise ValidationException("Interval schedule requires an interval", field="schedule.interval")


def validate_source(source: SourceConfig) -> None:
    if source.incremental and not source.incremental_field:
        raise ValidationException("Incremental processing requires an incremental field", field="source.incrementalField")


def validate_transformation(transformation: Transformation) -> None:
    if not transformation.operations:
        raise ValidationException("At least one aggregation operation is required", field="transformation.operations")


def validate_job_definition(definition: JobCreate) -> None:
    """Reject definitions the executor could never run."""
    validate_schedule(definition.schedule)
    validate_source(definition.source)
    validate_transformation(definition.transformation)


class JobRegistry:
    """Thread-safe store of aggregation jobs."""

    def __init__(self, repository: Optional[IJobRepository] = None):
        self.repository = repository or InMemoryJobRepository()
        self._lock = threading.RLock()

    def _load(self, job_id: str) -> Job:
        job = self.repository.get(job_id)
        if job is None:
            raise NotFoundError("Aggregation job", job_id)
        return job

    def _save(self, job: Job) -> Job:
        self.repository.put(job)
        return job.model_copy(deep=True)

    def create(self, definition: JobCreate, user_id: Optional[str] = None) -> Job:
        validate_job_definition(definition)

        job = Job(
            name=definition.name,
            type=definition.type,
            schedule=definition.schedule.model_copy(deep=True),
            source=definition.source.model_copy(deep=True),
            target=definition.target.model_copy(deep=True),
            transformation=definition.transformation.model_copy(deep=True),
            is_active=definition.is_active,
            created_by=user_id,
        )
        job.next_run = compute_next_run(job.schedule, job.created_at)

        with self._lock:
            saved = self._save(job)

        logger.info(f"Created aggregation job: {job.name} ({job.id})")
        return saved

    def get(self, job_id: str) -> Job:
        with self._lock:
            return self._load(job_id).model_copy(deep=True)

    def find(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self.repository.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list_all(self) -> List[Job]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self.repository.list()]

    def count(self) -> int:
        with self._lock:
            return len(self.repository.list())

    def list(self, filters: Optional[JobFilter] = None, page: int = 1, limit: int = 10) -> Tuple[List[Job], int]:
        """
        Filter, sort newest first and paginate jobs.

        Returns:
            Page of jobs and the total number of matches
        """
        filters = filters or JobFilter()
        jobs = self.list_all()

        if filters.type:
            jobs = [job for job in jobs if job.type == filters.type]
        if filters.status:
            jobs = [job for job in jobs if job.status == filters.status]
        if filters.category:
            category = filters.category.lower()
            jobs = [job for job in jobs if category in job.name.lower()]
        if filters.search:
            search = filters.search.lower()
            jobs = [job for job in jobs if search in job.name.lower()]
        if filters.active_only:
            jobs = [job for job in jobs if job.is_active]
        if filters.created_from:
            created_from = ensure_aware(filters.created_from)
            jobs = [job for job in jobs if job.created_at >= created_from]
        if filters.created_to:
            created_to = ensure_aware(filters.created_to)
            jobs = [job for job in jobs if job.created_at <= created_to]

        jobs.sort(key=lambda job: job.created_at, reverse=True)
        total = len(jobs)
        start = (max(page, 1) - 1) * limit
        return jobs[start:start + limit], total

    def update(self, job_id: str, patch: JobUpdate) -> Job:
        with self._lock:
            job = self._load(job_id).model_copy(deep=True)

            if patch.name is not None:
                job.name = patch.name
            if patch.is_active is not None:
                job.is_active = patch.is_active

            if patch.schedule is not None:
                merged = job.schedule.model_dump()
                merged.update(patch.schedule.model_dump(exclude_unset=True, exclude_none=True))
                schedule = Schedule.model_validate(merged)
                validate_schedule(schedule)
                job.schedule = schedule
                job.next_run = compute_next_run(schedule)

            if patch.transformation is not None:
                merged = job.transformation.model_dump()
                merged.update(patch.transformation.model_dump(exclude_unset=True))
                transformation = Transformation.model_validate(merged)
                validate_transformation(transformation)
                job.transformation = transformation

            saved = self._save(job)

        logger.info(f"Updated aggregation job: {job_id}")
        return saved

    def delete(self, job_id: str) -> Job:
        with self._lock:
            job = self._load(job_id)
            if job.status == JobStatus.RUNNING:
                raise ConflictError("Cannot delete a running job", resource="aggregation_job")
            self.repository.delete(job_id)

        logger.info(f"Deleted aggregation job: {job_id}")
        return job.model_copy(deep=True)

    def mark_running(self, job_id: str) -> Job:
        with self._lock:
            job = self._load(job_id)
            if job.status == JobStatus.RUNNING:
                raise ConflictError(f"Job {job_id} is already running", resource="aggregation_job")
            job.status = JobStatus.RUNNING
            job.started_at = get_current_timestamp()
            job.completed_at = None
            job.progress = 0
            job.error = None
            return self._save(job)

    def set_progress(self, job_id: str, progress: int) -> Job:
        """Raise progress; lower values are ignored so progress never goes backwards."""
        with self._lock:
            job = self._load(job_id)
            job.progress = max(job.progress, min(progress, 100))
            return self._save(job)

    def mark_completed(self, job_id: str, result: JobResult) -> Job:
        with self._lock:
            job = self._load(job_id)
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.result = result
            job.completed_at = result.end_time
            job.last_run = result.start_time
            job.run_count += 1
            return self._save(job)

    def mark_failed(self, job_id: str, error: str) -> Job:
        with self._lock:
            job = self._load(job_id)
            job.status = JobStatus.FAILED
            job.error = error
            job.completed_at = get_current_timestamp()
            if job.started_at:
                job.last_run = job.started_at
            return self._save(job)

    def mark_cancelled(self, job_id: str) -> Job:
        with self._lock:
            job = self._load(job_id)
            if job.status == JobStatus.RUNNING:
                raise ConflictError("Cannot cancel a running job", resource="aggregation_job")
            job.status = JobStatus.CANCELLED
            return self._save(job)

    def reschedule(self, job_id: str, next_run: Optional[datetime]) -> Job:
        with self._lock:
            job = self._load(job_id)
            job.next_run = next_run
            return self._save(job)
