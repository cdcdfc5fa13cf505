from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from aggregation_engine.core.enums import JobStatus, JobType
from aggregation_engine.interfaces.dependencies import get_aggregation_service, get_current_user_id
from aggregation_engine.schemas.base import PaginatedResponse
from aggregation_engine.schemas.job_schemas import Job, JobCreate, JobFilter, JobUpdate, RunJobRequest
from aggregation_engine.schemas.statistics_schemas import AggregationStatistics, ServiceStats, StatisticsQuery
from aggregation_engine.schemas.template_schemas import AggregationTemplate, TemplateCreate
from aggregation_engine.services.aggregation_service import AggregationService

router = APIRouter(prefix="/aggregation", tags=["aggregation"])


@router.post("/jobs", response_model=Job, status_code=status.HTTP_201_CREATED)
async def create_job(
    job_data: JobCreate,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
) -> Job:
    """Create a new aggregation job"""
    return await service.create_job(job_data, user_id)


@router.get("/jobs", response_model=PaginatedResponse[Job])
async def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    job_type: Optional[JobType] = Query(None, alias="type", description="Filter by job type"),
    job_status: Optional[JobStatus] = Query(None, alias="status", description="Filter by job status"),
    category: Optional[str] = Query(None, description="Filter by category keyword in the job name"),
    search: Optional[str] = Query(None, description="Search in job name"),
    active_only: bool = Query(False, alias="activeOnly"),
    created_from: Optional[datetime] = Query(None, alias="createdFrom"),
    created_to: Optional[datetime] = Query(None, alias="createdTo"),
    service: AggregationService = Depends(get_aggregation_service),
) -> PaginatedResponse[Job]:
    """List aggregation jobs with pagination and filters"""
    filters = JobFilter(
        type=job_type,
        status=job_status,
        category=category,
        search=search,
        active_only=active_only,
        created_from=created_from,
        created_to=created_to,
    )
    jobs, total = service.list_jobs(filters, page=page, limit=limit)
    return PaginatedResponse[Job].build(jobs, total, page, limit)


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, service: AggregationService = Depends(get_aggregation_service)) -> Job:
    """Get specific job details"""
    return service.get_job(job_id)


@router.patch("/jobs/{job_id}", response_model=Job)
async def update_job(
    job_id: str,
    job_data: JobUpdate,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
) -> Job:
    """Update job name, activity, schedule or transformation"""
    return await service.update_job(job_id, job_data, user_id)


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
):
    """Delete a job that is not running"""
    await service.delete_job(job_id, user_id)
    return {"message": "Job deleted successfully", "job_id": job_id}


@router.post("/jobs/{job_id}/run", response_model=Job, status_code=status.HTTP_202_ACCEPTED)
async def run_job(
    job_id: str,
    request: Optional[RunJobRequest] = None,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
) -> Job:
    """Queue a manual run"""
    return await service.run_job(job_id, request, user_id)


@router.post("/jobs/{job_id}/cancel", response_model=Job)
async def cancel_job(
    job_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
) -> Job:
    """Remove a queued job and mark it cancelled"""
    return await service.cancel_job(job_id, user_id)


@router.post("/templates", response_model=AggregationTemplate, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: TemplateCreate,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: AggregationService = Depends(get_aggregation_service),
) -> AggregationTemplate:
    return await service.create_template(template_data, user_id)


@router.get("/templates", response_model=List[AggregationTemplate])
async def list_templates(service: AggregationService = Depends(get_aggregation_service)) -> List[AggregationTemplate]:
    return service.list_templates()


@router.get("/statistics", response_model=AggregationStatistics)
async def get_statistics(
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    category: Optional[str] = Query(None),
    service: AggregationService = Depends(get_aggregation_service),
) -> AggregationStatistics:
    """Job statistics for a date range"""
    return service.get_statistics(StatisticsQuery(date_from=date_from, date_to=date_to, category=category))


@router.get("/stats", response_model=ServiceStats)
async def get_service_stats(service: AggregationService = Depends(get_aggregation_service)) -> ServiceStats:
    """Queue depths, running jobs and process resources"""
    return service.get_service_stats()


@router.get("/templates/{template_id}", response_model=AggregationTemplate)
async def get_template(template_id: str, service: AggregationService = Depends(get_aggregation_service)) -> AggregationTemplate:
    return service.get_template(template_id)
