from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from aggregation_engine.core.config import ColumnarStoreSettings, EventSettings, SchedulerSettings, Settings
from aggregation_engine.infrastructure.connectors.factory import create_default_registry
from aggregation_engine.schemas.job_schemas import JobCreate
from aggregation_engine.services.aggregation_service import AggregationService
from aggregation_engine.utils.event_publisher import EventPublisher


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE operations (id INTEGER PRIMARY KEY, terminal TEXT, teu_count INTEGER, updated_at INTEGER)"
        ))
        conn.execute(text("CREATE TABLE aggregated_data (terminal TEXT, total_teu INTEGER)"))
    yield engine
    engine.dispose()


@pytest.fixture
def insert_operations(engine):
    def _insert(rows: List[Dict[str, Any]]) -> None:
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO operations (id, terminal, teu_count, updated_at) "
                    "VALUES (:id, :terminal, :teu_count, :updated_at)"
                ),
                rows,
            )

    return _insert


@pytest.fixture
def fetch_rows(engine):
    def _fetch(sql: str) -> List[Dict[str, Any]]:
        with engine.connect() as conn:
            return [dict(row) for row in conn.execute(text(sql)).mappings()]

    return _fetch


@pytest.fixture
def settings():
    return Settings(
        scheduler=SchedulerSettings(),
        columnar=ColumnarStoreSettings(url="sqlite://"),
        events=EventSettings(redis_url=None),
    )


@pytest.fixture
def events():
    received = []
    publisher = EventPublisher(EventSettings(redis_url=None))
    publisher.subscribe("*", received.append)
    publisher.received = received
    return publisher


@pytest.fixture
def service(settings, engine, events):
    connectors = create_default_registry(settings.columnar, engine=engine)
    return AggregationService(settings=settings, connectors=connectors, publisher=events)


@pytest.fixture
def job_definition():
    def _build(**overrides) -> JobCreate:
        data = {
            "name": "Terminal TEU totals",
            "type": "scheduled",
            "schedule": {"type": "cron", "expression": "0 2 * * *"},
            "source": {"kind": "columnar_store", "table": "operations"},
            "target": {"kind": "columnar_store", "table": "aggregated_data"},
            "transformation": {
                "operations": [{"type": "sum", "field": "teu_count", "alias": "total_teu"}],
                "groupBy": ["terminal"],
                "orderBy": [{"field": "terminal", "direction": "ASC"}],
            },
        }
        data.update(overrides)
        return JobCreate.model_validate(data)

    return _build
