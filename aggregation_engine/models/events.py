"""
Event models for aggregation lifecycle events.
"""

from enum import Enum
from typing import Dict, Any, Optional
from uuid import UUID, uuid4
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from aggregation_engine.utils.date_utils import get_current_timestamp


class EventType(str, Enum):
    """Types of events that can be published"""

    # Job events
    JOB_CREATED = "aggregation.job.created"
    JOB_UPDATED = "aggregation.job.updated"
    JOB_DELETED = "aggregation.job.deleted"
    JOB_TRIGGERED = "aggregation.job.triggered"
    JOB_STARTED = "aggregation.job.started"
    JOB_COMPLETED = "aggregation.job.completed"
    JOB_FAILED = "aggregation.job.failed"
    JOB_CANCELLED = "aggregation.job.cancelled"

    # Template events
    TEMPLATE_CREATED = "aggregation.template.created"


class EventPriority(str, Enum):
    """Event priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Event(BaseModel):
    """Base event model"""

    event_id: UUID = Field(default_factory=uuid4, description="Unique event ID")
    event_type: EventType = Field(..., description="Type of event")
    timestamp: datetime = Field(default_factory=get_current_timestamp, description="Event timestamp")
    source: str = Field(default="aggregation_service", description="Source of the event")
    priority: EventPriority = Field(default=EventPriority.MEDIUM, description="Event priority")
    job_id: Optional[str] = Field(default=None, description="Job the event refers to")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload data")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Additional metadata")
    correlation_id: Optional[UUID] = Field(default=None, description="Correlation ID for tracking")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event_id": "550e8400-e29b-41d4-a716-446655440000",
                "event_type": "aggregation.job.completed",
                "timestamp": "2025-11-23T12:00:00Z",
                "source": "aggregation_service",
                "priority": "medium",
                "job_id": "550e8400-e29b-41d4-a716-446655440001",
                "data": {
                    "records_processed": 1000,
                    "execution_time": 1532,
                },
            }
        }
    )
