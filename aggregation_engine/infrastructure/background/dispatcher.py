"""
Priority dispatcher.

Queued jobs wait in three FIFO tiers and are started as asyncio tasks while
fewer than ``max_concurrent_jobs`` runs are in flight. A job id is never
running twice at once.
"""
import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional, Set

from aggregation_engine.core.config import SchedulerSettings, get_settings
from aggregation_engine.core.enums import PriorityTier
from aggregation_engine.utils.date_utils import get_current_timestamp
from aggregation_engine.utils.logger import get_logger

if TYPE_CHECKING:
    from aggregation_engine.services.job_executor import JobExecutor

logger = get_logger(__name__)

TIER_ORDER = (PriorityTier.HIGH, PriorityTier.NORMAL, PriorityTier.LOW)


@dataclass
class QueuedJob:
    """Queue entry for a pending run."""
    job_id: str
    priority: int
    parameters: Dict[str, Any] = field(default_factory=dict)
    enqueued_at: datetime = field(default_factory=get_current_timestamp)


class PriorityDispatcher:
    """Bounded-concurrency dispatcher over high/normal/low queues."""

    def __init__(self, executor: "JobExecutor", settings: Optional[SchedulerSettings] = None):
        self.executor = executor
        self.settings = settings or get_settings().scheduler
        self._queues: Dict[PriorityTier, Deque[QueuedJob]] = {tier: deque() for tier in TIER_ORDER}
        self._running: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.RLock()
        self._stop_event = asyncio.Event()

    @property
    def max_concurrent_jobs(self) -> int:
        return self.settings.max_concurrent_jobs

    def tier_for(self, priority: int) -> PriorityTier:
        if priority >= self.settings.high_priority_threshold:
            return PriorityTier.HIGH
        if priority >= self.settings.normal_priority_threshold:
            return PriorityTier.NORMAL
        return PriorityTier.LOW

    def enqueue(self, job_id: str, priority: Optional[int] = None, parameters: Optional[Dict[str, Any]] = None) -> PriorityTier:
        """
        Append a run request to the tier matching its priority.

        Args:
            job_id: Job to run
            priority: 1-10 score, defaults to the configured default priority
            parameters: Run parameters handed to the executor

        Returns:
            Tier the job was queued in
        """
        if priority is None:
            priority = self.settings.default_priority
        tier = self.tier_for(priority)
        with self._lock:
            self._queues[tier].append(QueuedJob(job_id=job_id, priority=priority, parameters=dict(parameters or {})))
        logger.debug(f"Job {job_id} queued in {tier.value} tier (priority {priority})")
        return tier

    def remove(self, job_id: str) -> bool:
        """Drop every queued entry of a job. Returns True if anything was removed."""
        removed = False
        with self._lock:
            for tier, queue in self._queues.items():
                remaining = deque(item for item in queue if item.job_id != job_id)
                if len(remaining) != len(queue):
                    removed = True
                    self._queues[tier] = remaining
        return removed

    def is_queued(self, job_id: str) -> bool:
        with self._lock:
            return any(item.job_id == job_id for queue in self._queues.values() for item in queue)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._running

    def _pop_next(self) -> Optional[QueuedJob]:
        for tier in TIER_ORDER:
            queue = self._queues[tier]
            while queue:
                item = queue.popleft()
                if item.job_id in self._running:
                    logger.warning(f"Job {item.job_id} is already running, dropping queued run")
                    continue
                return item
        return None

    def dispatch_pending(self) -> List[str]:
        """Start queued jobs up to the concurrency limit. Must be called from a running event loop."""
        started = []
        with self._lock:
            while len(self._running) < self.max_concurrent_jobs:
                item = self._pop_next()
                if item is None:
                    break
                self._running.add(item.job_id)
                task = asyncio.create_task(self._run(item), name=f"aggregation-job-{item.job_id}")
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                started.append(item.job_id)

        if started:
            logger.info(f"Dispatched jobs: {', '.join(started)}")
        return started

    async def _run(self, item: QueuedJob) -> None:
        try:
            await self.executor.execute(item.job_id, item.parameters)
        except Exception as e:
            logger.error(f"Unhandled error running job {item.job_id}: {e}", exc_info=True)
        finally:
            with self._lock:
                self._running.discard(item.job_id)

    async def wait_for_idle(self) -> None:
        """Wait until every dispatched run has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self) -> None:
        """Dispatch queued jobs on a fixed interval until stopped."""
        logger.info(f"Dispatcher started, interval {self.settings.dispatcher_interval_seconds}s")

        while not self._stop_event.is_set():
            try:
                self.dispatch_pending()
            except Exception as e:
                logger.error(f"Dispatcher tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.dispatcher_interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Dispatcher stopped")

    async def shutdown(self, wait: bool = True) -> None:
        """
        Stop the dispatch loop.

        Args:
            wait: Await in-flight runs; when False they are cancelled
        """
        self._stop_event.set()

        if wait:
            await self.wait_for_idle()
            return

        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "queues": {tier.value: len(queue) for tier, queue in self._queues.items()},
                "queued": sum(len(queue) for queue in self._queues.values()),
                "running": len(self._running),
                "running_jobs": sorted(self._running),
                "max_concurrent_jobs": self.max_concurrent_jobs,
            }
