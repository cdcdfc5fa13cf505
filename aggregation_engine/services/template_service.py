"""
Aggregation templates.
"""
import threading
from typing import Dict, List, Optional

from aggregation_engine.core.enums import JobCategory, JobType, OperationType
from aggregation_engine.core.exceptions import NotFoundError
from aggregation_engine.schemas.template_schemas import AggregationTemplate, TemplateCreate, TemplateVariable
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_ID = "operational-daily"


def build_default_templates() -> List[AggregationTemplate]:
    operational_daily = AggregationTemplate(
        id=DEFAULT_TEMPLATE_ID,
        name="Daily operations aggregation",
        description="Daily aggregation of terminal operations",
        category=JobCategory.OPERATIONAL,
        type=JobType.SCHEDULED,
        template={
            "source": {
                "kind": "columnar_store",
                "table": "{{source_table}}",
                "incremental": True,
                "incrementalField": "updated_at",
            },
            "target": {
                "kind": "columnar_store",
                "table": "{{target_table}}",
            },
            "transformation": {
                "operations": [
                    {"type": OperationType.COUNT.value, "field": "*", "alias": "total_operations"},
                    {"type": OperationType.SUM.value, "field": "teu_count", "alias": "total_teu"},
                ],
                "groupBy": ["date", "operation_type"],
            },
            "schedule": {
                "type": "cron",
                "expression": "{{cron_expression}}",
                "enabled": True,
                "priority": 5,
            },
        },
        variables=[
            TemplateVariable(name="source_table", description="Source table", required=True),
            TemplateVariable(name="target_table", description="Target table", required=True),
            TemplateVariable(
                name="cron_expression",
                description="Cron expression",
                required=True,
                default_value="0 2 * * *",
            ),
        ],
        is_default=True,
        tags=["operations", "daily", "terminal"],
    )
    return [operational_daily]


class TemplateService:
    """In-memory template catalogue."""

    def __init__(self, install_defaults: bool = True):
        self._templates: Dict[str, AggregationTemplate] = {}
        self._lock = threading.RLock()
        if install_defaults:
            for template in build_default_templates():
                self._templates[template.id] = template
            logger.info(f"Initialized aggregation templates: {len(self._templates)}")

    def create_template(self, definition: TemplateCreate, user_id: Optional[str] = None) -> AggregationTemplate:
        template = AggregationTemplate(
            name=definition.name,
            description=definition.description or "",
            category=definition.category,
            type=definition.type,
            template=definition.template,
            variables=definition.variables,
            is_default=definition.is_default,
            tags=definition.tags,
            created_by=user_id,
        )
        with self._lock:
            self._templates[template.id] = template
        logger.info(f"Created aggregation template: {template.name} ({template.id})")
        return template.model_copy(deep=True)

    def get_template(self, template_id: str) -> AggregationTemplate:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                raise NotFoundError("Aggregation template", template_id)
            return template.model_copy(deep=True)

    def list_templates(self) -> List[AggregationTemplate]:
        with self._lock:
            return [template.model_copy(deep=True) for template in self._templates.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._templates)
