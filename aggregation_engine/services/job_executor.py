"""
Job executor.

Runs one job end to end: extract, transform, load, advance the incremental
watermark and record the outcome. A failing run marks the job failed and
never raises into the dispatcher.
"""
import asyncio
import json
from typing import Any, Dict, Optional

from aggregation_engine.core.exceptions import ConflictError, NotFoundError
from aggregation_engine.infrastructure.connectors.factory import ConnectorRegistry
from aggregation_engine.models.events import EventPriority, EventType
from aggregation_engine.schemas.job_schemas import Job, JobResult
from aggregation_engine.services.incremental_state import IncrementalStateStore
from aggregation_engine.services.job_registry import JobRegistry
from aggregation_engine.transformers.aggregator import transform
from aggregation_engine.utils.date_utils import duration_ms, get_current_timestamp
from aggregation_engine.utils.event_publisher import EventPublisher
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

PROGRESS_STARTED = 10
PROGRESS_EXTRACTED = 30
PROGRESS_TRANSFORMED = 60
PROGRESS_LOADED = 80


def payload_size(records: Any) -> int:
    """UTF-8 byte length of the compact JSON encoding of ``records``."""
    return len(json.dumps(records, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8"))


class JobExecutor:
    """Executes aggregation jobs against the registered connectors."""

    def __init__(
        self,
        registry: JobRegistry,
        state_store: IncrementalStateStore,
        connectors: ConnectorRegistry,
        publisher: Optional[EventPublisher] = None,
    ):
        self.registry = registry
        self.state_store = state_store
        self.connectors = connectors
        self.publisher = publisher or EventPublisher()

    async def execute(self, job_id: str, parameters: Optional[Dict[str, Any]] = None) -> Optional[Job]:
        """
        Run a job once.

        Args:
            job_id: Job to run
            parameters: Values for ``{{key}}`` placeholders in the source query

        Returns:
            Job as stored after the run, or None if the job was missing or busy
        """
        log_extra = {"job_id": job_id}

        try:
            job = self.registry.mark_running(job_id)
        except NotFoundError:
            logger.warning(f"Job {job_id} not found, skipping execution", extra=log_extra)
            return None
        except ConflictError:
            logger.warning(f"Job {job_id} is already running, skipping execution", extra=log_extra)
            return None

        start_time = job.started_at or get_current_timestamp()
        await self.publisher.publish(EventType.JOB_STARTED, job_id=job_id, data={"name": job.name})
        logger.info(f"Executing aggregation job {job.name} ({job_id})", extra=log_extra)

        stage = "extract"
        try:
            self.registry.set_progress(job_id, PROGRESS_STARTED)

            last_processed_value = None
            if job.source.incremental:
                last_processed_value = self.state_store.last_processed_value(job_id)

            source_connector = self.connectors.get(job.source.kind)
            records = await asyncio.to_thread(
                source_connector.extract, job.source, parameters or {}, last_processed_value
            )
            self.registry.set_progress(job_id, PROGRESS_EXTRACTED)

            stage = "transform"
            transformed = transform(records, job.transformation)
            self.registry.set_progress(job_id, PROGRESS_TRANSFORMED)

            stage = "load"
            target_connector = self.connectors.get(job.target.kind)
            inserted = await asyncio.to_thread(target_connector.load, job.target, transformed)
            self.registry.set_progress(job_id, PROGRESS_LOADED)

            stage = "state"
            if job.source.incremental and job.source.incremental_field:
                self.state_store.advance(job_id, records, job.source.incremental_field)

            end_time = get_current_timestamp()
            result = JobResult(
                records_processed=len(records),
                records_inserted=inserted,
                bytes_processed=payload_size(transformed),
                execution_time=duration_ms(start_time, end_time),
                start_time=start_time,
                end_time=end_time,
            )
            job = self.registry.mark_completed(job_id, result)

        except Exception as e:
            logger.error(f"Aggregation job {job_id} failed during {stage}: {e}", extra=log_extra, exc_info=True)
            try:
                job = self.registry.mark_failed(job_id, str(e))
            except NotFoundError:
                logger.warning(f"Job {job_id} disappeared before its failure could be recorded", extra=log_extra)
                return None
            await self.publisher.publish(
                EventType.JOB_FAILED,
                job_id=job_id,
                data={"name": job.name, "error": str(e), "stage": stage},
                priority=EventPriority.HIGH,
            )
            return job

        logger.info(
            f"Aggregation job {job_id} completed: {result.records_processed} records in {result.execution_time}ms",
            extra=log_extra,
        )
        await self.publisher.publish(
            EventType.JOB_COMPLETED,
            job_id=job_id,
            data={"name": job.name, "result": result.model_dump(mode="json")},
        )
        return job
