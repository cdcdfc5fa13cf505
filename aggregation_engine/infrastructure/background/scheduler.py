"""
Job scheduler for periodic aggregation jobs.
"""
import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

import pytz
from croniter import croniter

from aggregation_engine.core.config import SchedulerSettings, get_settings
from aggregation_engine.core.enums import JobStatus, JobType, ScheduleType
from aggregation_engine.schemas.job_schemas import Schedule
from aggregation_engine.utils.date_utils import ensure_aware, get_current_timestamp
from aggregation_engine.utils.logger import get_logger

if TYPE_CHECKING:
    from aggregation_engine.infrastructure.background.dispatcher import PriorityDispatcher
    from aggregation_engine.services.job_registry import JobRegistry

logger = get_logger(__name__)


def is_valid_cron(expression: str) -> bool:
    return croniter.is_valid(expression)


def compute_next_run(schedule: Schedule, now: Optional[datetime] = None, fired: bool = False) -> Optional[datetime]:
    """
    Compute the next fire time of a schedule.

    Args:
        schedule: Job schedule
        now: Reference time, defaults to the current UTC time
        fired: True when the schedule has just fired; once-schedules then have no next run

    Returns:
        Next run time in UTC, or None when the schedule does not fire again
    """
    now = ensure_aware(now) if now else get_current_timestamp()

    if schedule.type == ScheduleType.CRON:
        if not schedule.expression:
            return None
        local_now = now.astimezone(pytz.timezone(schedule.timezone))
        next_local = croniter(schedule.expression, local_now).get_next(datetime)
        return ensure_aware(next_local, schedule.timezone).astimezone(pytz.UTC)

    if schedule.type == ScheduleType.INTERVAL:
        if not schedule.interval:
            return None
        return now + timedelta(milliseconds=schedule.interval)

    if schedule.type == ScheduleType.ONCE:
        return None if fired else now

    return None


class JobScheduler:
    """Enqueues due scheduled jobs into the dispatcher."""

    def __init__(
        self,
        registry: "JobRegistry",
        dispatcher: "PriorityDispatcher",
        settings: Optional[SchedulerSettings] = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.settings = settings or get_settings().scheduler
        self._stop_event = asyncio.Event()

    def is_due(self, job, now: datetime) -> bool:
        return (
            job.is_active
            and job.type == JobType.SCHEDULED
            and job.schedule.enabled
            and job.next_run is not None
            and ensure_aware(job.next_run) <= now
            and job.status != JobStatus.RUNNING
        )

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Enqueue every due job and advance its next run. Returns the enqueued ids."""
        now = ensure_aware(now) if now else get_current_timestamp()
        enqueued = []

        for job in self.registry.list_all():
            if not self.is_due(job, now):
                continue

            self.dispatcher.enqueue(job.id, job.schedule.priority)
            next_run = compute_next_run(job.schedule, now, fired=True)
            self.registry.reschedule(job.id, next_run)
            enqueued.append(job.id)
            logger.info(f"Scheduled job {job.name} ({job.id}) queued, next run {next_run}")

        return enqueued

    async def run(self) -> None:
        """Tick until stopped."""
        logger.info(f"Scheduler started, interval {self.settings.scheduler_interval_seconds}s")

        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.scheduler_interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop_event.set()
