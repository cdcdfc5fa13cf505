from typing import Optional, Dict, Any, List
from uuid import uuid4
from pydantic import Field

from aggregation_engine.core.enums import JobCategory, JobType
from .base import CamelModel


class TemplateVariable(CamelModel):
    """A ``{{name}}`` placeholder used inside a template body."""
    name: str
    type: str = "string"
    description: Optional[str] = None
    required: bool = False
    default_value: Optional[Any] = None


class AggregationTemplate(CamelModel):
    """Reusable job definition with placeholders."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str = ""
    category: JobCategory = JobCategory.CUSTOM
    type: JobType = JobType.SCHEDULED
    template: Dict[str, Any] = Field(default_factory=dict)
    variables: List[TemplateVariable] = Field(default_factory=list)
    is_default: bool = False
    tags: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None


class TemplateCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    category: JobCategory = JobCategory.CUSTOM
    type: JobType = JobType.SCHEDULED
    template: Dict[str, Any] = Field(default_factory=dict)
    variables: List[TemplateVariable] = Field(default_factory=list)
    is_default: bool = False
    tags: List[str] = Field(default_factory=list)
