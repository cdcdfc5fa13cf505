"""
Event publisher for aggregation lifecycle events.

Events go to in-process subscribers and, when a Redis URL is configured,
to Redis pub/sub. Publishing never raises into the caller.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from aggregation_engine.core.config import EventSettings, get_settings
from aggregation_engine.models.events import Event, EventPriority, EventType
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], Any]

ALL_EVENTS = "*"


class EventPublisher:
    """
    Event publisher with local subscribers and optional Redis pub/sub.
    """

    def __init__(self, settings: Optional[EventSettings] = None, redis_client: Optional[redis.Redis] = None):
        """
        Initialize event publisher.

        Args:
            settings: Event settings (defaults to application settings)
            redis_client: Pre-built async client; otherwise one is created from ``redis_url``
        """
        self.settings = settings or get_settings().events
        self.redis_client = redis_client
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    async def connect(self) -> None:
        """Create the Redis client if a URL is configured"""
        if self.redis_client is None and self.settings.redis_url:
            self.redis_client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.settings.socket_timeout,
                socket_connect_timeout=self.settings.socket_timeout,
            )
            logger.info("Event publisher connected to Redis")

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
                logger.info("Event publisher disconnected from Redis")
            except RedisError as e:
                logger.error(f"Error disconnecting from Redis: {str(e)}")
            self.redis_client = None

    def subscribe(self, event_type: Any, handler: EventHandler) -> None:
        """
        Register a handler for an event type, or for every event with ``"*"``.
        """
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)
        with self._lock:
            self._handlers[key].append(handler)

    def unsubscribe(self, event_type: Any, handler: EventHandler) -> None:
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)
        with self._lock:
            if handler in self._handlers.get(key, []):
                self._handlers[key].remove(handler)

    def channel_for(self, event_type: EventType) -> str:
        return f"{self.settings.channel_prefix}:{event_type.value}"

    async def publish(
        self,
        event_type: EventType,
        job_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        priority: EventPriority = EventPriority.MEDIUM,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Event:
        """
        Publish an event.

        Args:
            event_type: Type of event
            job_id: Job the event refers to
            data: Event payload data
            priority: Event priority
            metadata: Additional metadata

        Returns:
            Published Event instance
        """
        event = Event(
            event_type=event_type,
            job_id=job_id,
            priority=priority,
            data=data or {},
            metadata=metadata,
        )

        with self._lock:
            handlers = list(self._handlers.get(event_type.value, [])) + list(self._handlers.get(ALL_EVENTS, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler {getattr(handler, '__name__', handler)} failed for {event_type.value}: {e}")

        if self.redis_client is not None:
            try:
                await self.redis_client.publish(self.channel_for(event_type), event.model_dump_json())
            except (RedisError, OSError) as e:
                # Publishing should not break the main flow
                logger.error(f"Failed to publish event {event_type.value}: {str(e)}")

        logger.debug(f"Published event: {event_type.value} job={job_id}")
        return event
