"""
Aggregation service.

Wires the registry, state store, connectors, executor, dispatcher and
scheduler together and exposes the operations used by the HTTP layer.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

import psutil

from aggregation_engine.core.config import Settings, get_settings
from aggregation_engine.core.enums import JobStatus, JobType
from aggregation_engine.core.exceptions import ConflictError
from aggregation_engine.core.logging import audit_log
from aggregation_engine.infrastructure.background.dispatcher import PriorityDispatcher
from aggregation_engine.infrastructure.background.scheduler import JobScheduler
from aggregation_engine.infrastructure.connectors.factory import ConnectorRegistry, create_default_registry
from aggregation_engine.models.events import EventType
from aggregation_engine.schemas.job_schemas import Job, JobCreate, JobFilter, JobUpdate, RunJobRequest
from aggregation_engine.schemas.statistics_schemas import AggregationStatistics, ServiceStats, StatisticsQuery
from aggregation_engine.schemas.template_schemas import AggregationTemplate, TemplateCreate
from aggregation_engine.services.incremental_state import IncrementalStateStore
from aggregation_engine.services.job_executor import JobExecutor
from aggregation_engine.services.job_registry import JobRegistry
from aggregation_engine.services.statistics_service import StatisticsService
from aggregation_engine.services.template_service import TemplateService
from aggregation_engine.utils.event_publisher import EventPublisher
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)


def build_lineage(job: Job) -> Dict[str, Any]:
    """Describe where a job reads from, where it writes to and what it computes."""
    return {
        "job_id": job.id,
        "sources": [{
            "kind": job.source.kind.value,
            "table": job.source.table,
            "query": job.source.query,
            "topic": job.source.topic,
        }],
        "targets": [{
            "kind": job.target.kind.value,
            "table": job.target.table,
            "collection": job.target.collection,
        }],
        "operations": [
            {"type": op.type, "field": op.field, "output": op.output_name}
            for op in job.transformation.operations
        ],
        "group_by": list(job.transformation.group_by),
    }


class AggregationService:
    """Facade over the aggregation job engine."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connectors: Optional[ConnectorRegistry] = None,
        publisher: Optional[EventPublisher] = None,
        registry: Optional[JobRegistry] = None,
        state_store: Optional[IncrementalStateStore] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or JobRegistry()
        self.state_store = state_store or IncrementalStateStore()
        self.connectors = connectors or create_default_registry(self.settings.columnar)
        self.publisher = publisher or EventPublisher(self.settings.events)
        self.executor = JobExecutor(self.registry, self.state_store, self.connectors, self.publisher)
        self.dispatcher = PriorityDispatcher(self.executor, self.settings.scheduler)
        self.scheduler = JobScheduler(self.registry, self.dispatcher, self.settings.scheduler)
        self.templates = TemplateService()
        self.statistics = StatisticsService(self.registry)
        self._background_tasks: List[asyncio.Task] = []
        self._started_at = time.time()

    # Lifecycle

    async def start(self) -> None:
        """Start the scheduler and dispatcher loops on the running event loop."""
        if self._background_tasks:
            return
        await self.publisher.connect()
        logger.info(f"Registered connectors: {self.connectors.list_registered()}")
        self._background_tasks = [
            asyncio.create_task(self.scheduler.run(), name="aggregation-scheduler"),
            asyncio.create_task(self.dispatcher.run(), name="aggregation-dispatcher"),
        ]
        logger.info("Aggregation service started")

    async def stop(self, wait: bool = True) -> None:
        """Stop the loops and wait for in-flight runs."""
        self.scheduler.stop()
        await self.dispatcher.shutdown(wait=wait)
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks = []
        self.connectors.close()
        await self.publisher.disconnect()
        logger.info("Aggregation service stopped")

    # Jobs

    async def create_job(self, definition: JobCreate, user_id: Optional[str] = None) -> Job:
        job = self.registry.create(definition, user_id)

        if job.source.incremental:
            self.state_store.init(job.id)

        logger.debug(f"Data lineage for job {job.id}: {build_lineage(job)}")
        audit_log("CREATE", "AGGREGATION_JOB", user_id=user_id, details={"job_id": job.id, "name": job.name})
        await self.publisher.publish(EventType.JOB_CREATED, job_id=job.id, data={"name": job.name, "type": job.type.value})

        if job.type == JobType.ON_DEMAND and job.is_active:
            self.dispatcher.enqueue(job.id, job.schedule.priority)

        return job

    def get_job(self, job_id: str) -> Job:
        return self.registry.get(job_id)

    def list_jobs(self, filters: Optional[JobFilter] = None, page: int = 1, limit: Optional[int] = None) -> Tuple[List[Job], int]:
        limit = min(limit or self.settings.default_page_size, self.settings.max_page_size)
        return self.registry.list(filters, page=page, limit=limit)

    async def update_job(self, job_id: str, patch: JobUpdate, user_id: Optional[str] = None) -> Job:
        job = self.registry.update(job_id, patch)
        audit_log("UPDATE", "AGGREGATION_JOB", user_id=user_id, details={"job_id": job_id})
        await self.publisher.publish(
            EventType.JOB_UPDATED,
            job_id=job_id,
            data={"changes": patch.model_dump(exclude_unset=True, mode="json")},
        )
        return job

    async def delete_job(self, job_id: str, user_id: Optional[str] = None) -> Job:
        job = self.registry.delete(job_id)
        self.dispatcher.remove(job_id)
        self.state_store.delete(job_id)
        audit_log("DELETE", "AGGREGATION_JOB", user_id=user_id, details={"job_id": job_id})
        await self.publisher.publish(EventType.JOB_DELETED, job_id=job_id, data={"name": job.name})
        return job

    async def run_job(self, job_id: str, request: Optional[RunJobRequest] = None, user_id: Optional[str] = None) -> Job:
        """Queue a manual run. Inactive jobs may still be run by hand."""
        request = request or RunJobRequest()
        job = self.registry.get(job_id)
        if job.status == JobStatus.RUNNING or self.dispatcher.is_running(job_id):
            raise ConflictError("Job is already running", resource="aggregation_job")

        priority = self.settings.scheduler.manual_high_priority if request.high_priority else job.schedule.priority
        self.dispatcher.enqueue(job_id, priority, request.parameters)

        logger.info(f"Manual run requested for job {job_id} by {user_id}")
        await self.publisher.publish(
            EventType.JOB_TRIGGERED,
            job_id=job_id,
            data={"user_id": user_id, "parameters": request.parameters, "priority": priority},
        )
        return job

    async def cancel_job(self, job_id: str, user_id: Optional[str] = None) -> Job:
        """Drop queued runs of a job and mark it cancelled. Running jobs cannot be cancelled."""
        job = self.registry.get(job_id)
        if job.status == JobStatus.RUNNING or self.dispatcher.is_running(job_id):
            raise ConflictError("Cannot cancel a running job", resource="aggregation_job")

        removed = self.dispatcher.remove(job_id)
        job = self.registry.mark_cancelled(job_id)
        audit_log("CANCEL", "AGGREGATION_JOB", user_id=user_id, details={"job_id": job_id, "dequeued": removed})
        await self.publisher.publish(EventType.JOB_CANCELLED, job_id=job_id, data={"dequeued": removed})
        return job

    # Templates and statistics

    async def create_template(self, definition: TemplateCreate, user_id: Optional[str] = None) -> AggregationTemplate:
        template = self.templates.create_template(definition, user_id)
        await self.publisher.publish(
            EventType.TEMPLATE_CREATED,
            data={"template_id": template.id, "name": template.name, "user_id": user_id},
        )
        return template

    def list_templates(self) -> List[AggregationTemplate]:
        return self.templates.list_templates()

    def get_template(self, template_id: str) -> AggregationTemplate:
        return self.templates.get_template(template_id)

    def get_statistics(self, query: Optional[StatisticsQuery] = None) -> AggregationStatistics:
        return self.statistics.get_statistics(query)

    def get_service_stats(self) -> ServiceStats:
        queue_stats = self.dispatcher.stats()
        memory = psutil.Process().memory_info()
        return ServiceStats(
            total_jobs=self.registry.count(),
            running_jobs=queue_stats["running"],
            queued_jobs=queue_stats["queued"],
            high_priority_queue=queue_stats["queues"]["high"],
            normal_priority_queue=queue_stats["queues"]["normal"],
            low_priority_queue=queue_stats["queues"]["low"],
            max_concurrent_jobs=queue_stats["max_concurrent_jobs"],
            templates=self.templates.count(),
            incremental_states=self.state_store.count(),
            memory_usage={"rss": memory.rss, "vms": memory.vms},
            uptime=time.time() - self._started_at,
        )
