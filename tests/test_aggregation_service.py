import asyncio

import pytest

from aggregation_engine.core.enums import JobCategory, JobStatus
from aggregation_engine.core.exceptions import ConflictError, NotFoundError
from aggregation_engine.models.events import EventType
from aggregation_engine.schemas.job_schemas import RunJobRequest
from aggregation_engine.schemas.statistics_schemas import StatisticsQuery
from aggregation_engine.schemas.template_schemas import TemplateCreate
from aggregation_engine.services.statistics_service import infer_category
from aggregation_engine.services.template_service import DEFAULT_TEMPLATE_ID

OPERATIONS = [
    {"id": 1, "terminal": "north", "teu_count": 4, "updated_at": 100},
    {"id": 2, "terminal": "south", "teu_count": 2, "updated_at": 200},
]


def test_active_on_demand_job_is_queued_on_creation(service, job_definition):
    job = asyncio.run(service.create_job(job_definition(type="on_demand", schedule={"priority": 3})))
    inactive = asyncio.run(service.create_job(job_definition(type="on_demand", isActive=False)))
    scheduled = asyncio.run(service.create_job(job_definition()))

    assert service.dispatcher.is_queued(job.id)
    assert not service.dispatcher.is_queued(inactive.id)
    assert not service.dispatcher.is_queued(scheduled.id)
    assert service.get_service_stats().low_priority_queue == 1


def test_incremental_job_gets_initial_state(service, job_definition):
    job = asyncio.run(service.create_job(job_definition(source={
        "kind": "columnar_store", "table": "operations", "incremental": True, "incrementalField": "updated_at",
    })))
    assert service.state_store.get(job.id).version == 1


def test_run_job_uses_manual_high_priority_and_parameters(service, job_definition, events):
    job = asyncio.run(service.create_job(job_definition()))
    request = RunJobRequest(parameters={"terminal": "north"}, high_priority=True)
    asyncio.run(service.run_job(job.id, request, user_id="ops"))

    stats = service.dispatcher.stats()
    assert stats["queues"]["high"] == 1
    assert events.received[-1].event_type == EventType.JOB_TRIGGERED
    assert events.received[-1].data["parameters"] == {"terminal": "north"}


def test_run_job_rejected_while_running(service, job_definition):
    job = asyncio.run(service.create_job(job_definition()))
    service.registry.mark_running(job.id)

    with pytest.raises(ConflictError):
        asyncio.run(service.run_job(job.id))


def test_run_job_allowed_for_inactive_job(service, job_definition):
    job = asyncio.run(service.create_job(job_definition(isActive=False)))
    asyncio.run(service.run_job(job.id))
    assert service.dispatcher.is_queued(job.id)


def test_cancel_removes_queued_job(service, job_definition):
    job = asyncio.run(service.create_job(job_definition(type="on_demand")))

    cancelled = asyncio.run(service.cancel_job(job.id))

    assert cancelled.status == JobStatus.CANCELLED
    assert not service.dispatcher.is_queued(job.id)


def test_delete_guard_and_state_cleanup(service, job_definition, insert_operations):
    insert_operations(OPERATIONS)
    job = asyncio.run(service.create_job(job_definition(source={
        "kind": "columnar_store", "table": "operations", "incremental": True, "incrementalField": "updated_at",
    })))

    service.registry.mark_running(job.id)
    with pytest.raises(ConflictError):
        asyncio.run(service.delete_job(job.id))
    service.registry.mark_failed(job.id, "interrupted")

    asyncio.run(service.executor.execute(job.id))
    assert service.get_job(job.id).status == JobStatus.COMPLETED
    assert service.state_store.get(job.id).last_processed_value == 200

    asyncio.run(service.delete_job(job.id))
    with pytest.raises(NotFoundError):
        service.get_job(job.id)
    assert service.state_store.get(job.id) is None


def test_dispatch_through_service_runs_job(service, job_definition, insert_operations):
    insert_operations(OPERATIONS)
    job = asyncio.run(service.create_job(job_definition(type="on_demand")))

    async def scenario():
        assert service.dispatcher.dispatch_pending() == [job.id]
        await service.dispatcher.wait_for_idle()

    asyncio.run(scenario())
    assert service.get_job(job.id).status == JobStatus.COMPLETED


def test_start_and_stop_lifecycle(service):
    async def scenario():
        await service.start()
        assert len(service._background_tasks) == 2
        await service.stop()
        assert service._background_tasks == []

    asyncio.run(scenario())


def test_default_and_custom_templates(service, events):
    templates = service.list_templates()
    assert [template.id for template in templates] == [DEFAULT_TEMPLATE_ID]

    definition = TemplateCreate(name="Revenue by day", category="financial")
    template = asyncio.run(service.create_template(definition, user_id="analyst"))

    assert template.created_by == "analyst"
    assert len(service.list_templates()) == 2
    assert events.received[-1].event_type == EventType.TEMPLATE_CREATED


@pytest.mark.parametrize(
    "name, category",
    [
        ("Terminal throughput", JobCategory.OPERATIONAL),
        ("Monthly revenue", JobCategory.FINANCIAL),
        ("Equipment utilisation", JobCategory.EQUIPMENT),
        ("Safety incidents", JobCategory.SAFETY),
        ("Environment emissions", JobCategory.ENVIRONMENTAL),
        ("Customer orders", JobCategory.CUSTOMER),
        ("Misc", JobCategory.CUSTOM),
    ],
)
def test_infer_category(name, category):
    assert infer_category(name) == category


def test_statistics_summarise_runs(service, job_definition, insert_operations):
    insert_operations(OPERATIONS)
    good = asyncio.run(service.create_job(job_definition(name="Terminal throughput")))
    bad = asyncio.run(service.create_job(
        job_definition(name="Revenue rollup", target={"kind": "columnar_store", "table": "nope"})
    ))
    asyncio.run(service.create_job(job_definition(name="Customer orders")))

    asyncio.run(service.executor.execute(good.id))
    asyncio.run(service.executor.execute(good.id))
    asyncio.run(service.executor.execute(bad.id))

    stats = service.get_statistics()
    assert stats.total_jobs == 3
    assert stats.completed_jobs == 1
    assert stats.failed_jobs == 1
    assert stats.success_rate == pytest.approx(100 / 3)
    assert stats.total_records_processed == 2
    assert stats.performance_metrics.most_active_job.id == good.id
    assert stats.performance_metrics.most_active_job.runs_count == 2
    assert stats.performance_metrics.biggest_job.records_processed == 2
    assert [activity.job_id for activity in stats.recent_activity] == [good.id]
    assert {entry.category: entry.count for entry in stats.jobs_by_category} == {
        JobCategory.OPERATIONAL: 1,
        JobCategory.FINANCIAL: 1,
        JobCategory.CUSTOMER: 1,
    }

    filtered = service.get_statistics(StatisticsQuery(category="revenue"))
    assert filtered.total_jobs == 1
    assert filtered.failed_jobs == 1
