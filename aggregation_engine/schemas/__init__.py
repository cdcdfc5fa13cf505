from .base import CamelModel, PaginatedResponse
from .job_schemas import (
    IncrementalState,
    Job,
    JobCreate,
    JobFilter,
    JobResult,
    JobUpdate,
    RunJobRequest,
    Schedule,
    SourceConfig,
    TargetConfig,
    Transformation,
)
from .statistics_schemas import AggregationStatistics, ServiceStats, StatisticsQuery
from .template_schemas import AggregationTemplate, TemplateCreate, TemplateVariable
