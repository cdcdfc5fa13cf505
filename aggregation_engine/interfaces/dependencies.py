from typing import Optional

from fastapi import Header, Request

from aggregation_engine.services.aggregation_service import AggregationService


def get_aggregation_service(request: Request) -> AggregationService:
    """Aggregation service created in the application lifespan"""
    return request.app.state.aggregation_service


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity forwarded by the gateway; authentication happens upstream"""
    return x_user_id
