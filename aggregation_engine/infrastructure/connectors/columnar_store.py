"""
Columnar analytics store connector.

Extraction queries are assembled from the source configuration and run
through SQLAlchemy with bound parameters: filter values, the incremental
watermark and ``{{key}}`` run parameters never end up spliced into SQL text.
"""

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import bindparam, column, create_engine, insert, table, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from aggregation_engine.core.config import ColumnarStoreSettings, get_settings
from aggregation_engine.core.enums import ConnectorKind, FilterCondition, FilterOperator
from aggregation_engine.core.exceptions import ExecutionError, ValidationException
from aggregation_engine.schemas.job_schemas import ConnectionConfig, FilterRule, SourceConfig, TargetConfig
from aggregation_engine.utils.logger import get_logger
from .base import Connector

logger = get_logger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
PLACEHOLDER_PATTERN = re.compile(
    r"'\{\{\s*(?P<quoted>[A-Za-z_][A-Za-z0-9_]*)\s*\}\}'|\{\{\s*(?P<bare>[A-Za-z_][A-Za-z0-9_]*)\s*\}\}"
)
DERIVED_TABLE_ALIAS = "_source"

DEFAULT_DRIVER = "clickhouse+http"

_COMPARISON_OPERATORS = {
    FilterOperator.EQ: "=",
    FilterOperator.NE: "!=",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "LIKE",
}


def validate_identifier(name: str, what: str = "identifier") -> str:
    if not name or not IDENTIFIER_PATTERN.match(name):
        raise ValidationException(f"Invalid {what}: {name!r}", field=what, value=name)
    return name


@dataclass
class ExtractionQuery:
    """SQL text plus the values bound to its named parameters."""
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)
    expanding: Set[str] = field(default_factory=set)

    def to_statement(self):
        statement = text(self.sql)
        if self.expanding:
            statement = statement.bindparams(
                *(bindparam(name, expanding=True) for name in sorted(self.expanding))
            )
        return statement


def build_where_clause(filters: List[FilterRule], query: ExtractionQuery) -> str:
    """Render source filters as bound predicates joined by the first filter's condition."""
    clauses = []
    for index, rule in enumerate(filters):
        name = f"filter_{index}"
        field_name = validate_identifier(rule.field, "filter field")

        if rule.operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            values = rule.value if isinstance(rule.value, (list, tuple, set)) else [rule.value]
            query.params[name] = list(values)
            query.expanding.add(name)
            keyword = "IN" if rule.operator == FilterOperator.IN else "NOT IN"
            clauses.append(f"{field_name} {keyword} :{name}")
            continue

        if rule.operator == FilterOperator.LIKE:
            query.params[name] = f"%{rule.value}%"
        else:
            query.params[name] = rule.value
        clauses.append(f"{field_name} {_COMPARISON_OPERATORS[rule.operator]} :{name}")

    condition = (filters[0].condition or FilterCondition.AND).value
    return f" {condition} ".join(clauses)


def build_extraction_query(
    source: SourceConfig,
    parameters: Optional[Dict[str, Any]] = None,
    last_processed_value: Any = None,
) -> ExtractionQuery:
    """
    Assemble the extraction statement for a columnar source.

    A user query is wrapped as a derived table before filters and the
    incremental predicate are applied, so they constrain every row the
    query returns.
    """
    if source.query:
        base_sql = source.query.strip().rstrip(";").strip()
        from_clause = f"({base_sql}) AS {DERIVED_TABLE_ALIAS}"
    elif source.table:
        from_clause = validate_identifier(source.table, "table")
        base_sql = f"SELECT * FROM {from_clause}"
    else:
        raise ValidationException("Columnar source requires a query or a table", field="source")

    query = ExtractionQuery(sql=base_sql)
    conditions = []

    if source.filters:
        conditions.append(f"({build_where_clause(source.filters, query)})")

    if source.incremental and source.incremental_field and last_processed_value is not None:
        incremental_field = validate_identifier(source.incremental_field, "incremental field")
        conditions.append(f"{incremental_field} > :last_processed_value")
        query.params["last_processed_value"] = last_processed_value

    if conditions:
        query.sql = f"SELECT * FROM {from_clause} WHERE {' AND '.join(conditions)}"

    parameters = parameters or {}

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group("quoted") or match.group("bare")
        if match.group("bare") and match.string.count("'", 0, match.start()) % 2:
            raise ValidationException(
                f"Query parameter '{key}' is embedded in a string literal; "
                f"quote the whole value as '{{{{{key}}}}}'",
                field=key,
            )
        if key not in parameters:
            raise ValidationException(f"Missing value for query parameter '{key}'", field=key)
        name = f"param_{key}"
        value = parameters[key]
        if isinstance(value, (list, tuple, set)):
            value = list(value)
            query.expanding.add(name)
        query.params[name] = value
        return f":{name}"

    query.sql = PLACEHOLDER_PATTERN.sub(_substitute, query.sql)
    return query


class ColumnarStoreConnector(Connector):
    """Connector for a columnar analytics store reachable through SQLAlchemy."""

    kind = ConnectorKind.COLUMNAR_STORE.value

    def __init__(
        self,
        settings: Optional[ColumnarStoreSettings] = None,
        engine: Optional[Engine] = None,
    ):
        """
        Args:
            settings: Store settings; defaults to application settings
            engine: Engine used when a job's connection does not name its own
        """
        self.settings = settings or get_settings().columnar
        self._default_engine = engine
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    def _resolve_url(self, connection: ConnectionConfig) -> Optional[URL]:
        if connection.url:
            return make_url(connection.url)
        if connection.host:
            return URL.create(
                drivername=connection.options.get("driver", DEFAULT_DRIVER),
                username=connection.username,
                password=connection.password,
                host=connection.host,
                port=connection.port,
                database=connection.database,
            )
        return None

    def _create_engine(self, url: URL) -> Engine:
        config: Dict[str, Any] = {"echo": self.settings.echo, "pool_pre_ping": True}
        if url.get_backend_name() == "sqlite":
            config["connect_args"] = {"check_same_thread": False}
            if not url.database or url.database == ":memory:":
                config["poolclass"] = StaticPool
        engine = create_engine(url, **config)
        logger.info(f"Columnar store engine created: {url.render_as_string(hide_password=True)}")
        return engine

    def get_engine(self, connection: Optional[ConnectionConfig] = None) -> Engine:
        url = self._resolve_url(connection) if connection else None
        if url is None:
            if self._default_engine is not None:
                return self._default_engine
            url = make_url(self.settings.url)

        key = url.render_as_string(hide_password=False)
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = self._create_engine(url)
                self._engines[key] = engine
            return engine

    def extract(
        self,
        source: SourceConfig,
        parameters: Optional[Dict[str, Any]] = None,
        last_processed_value: Any = None,
    ) -> List[Dict[str, Any]]:
        query = build_extraction_query(source, parameters, last_processed_value)
        logger.debug(f"Columnar store query: {query.sql} params={list(query.params)}")

        engine = self.get_engine(source.connection)
        try:
            with engine.connect() as connection:
                result = connection.execute(query.to_statement(), query.params).mappings()
                if source.batch_size:
                    records: List[Dict[str, Any]] = []
                    for batch in result.partitions(source.batch_size):
                        records.extend(dict(row) for row in batch)
                        logger.debug(f"Fetched batch of {len(batch)} records")
                else:
                    records = [dict(row) for row in result]
        except SQLAlchemyError as e:
            raise ExecutionError(f"Columnar store extraction failed: {e}", stage="extract") from e

        logger.info(f"Extracted {len(records)} records from columnar store")
        return records

    def load(self, target: TargetConfig, records: List[Dict[str, Any]]) -> int:
        if not records:
            return 0

        table_name = target.table or self.settings.default_table
        validate_identifier(table_name, "table")
        schema, _, name = table_name.rpartition(".")

        columns = list(records[0].keys())
        target_table = table(name, *(column(col) for col in columns), schema=schema or None)
        rows = [{col: record.get(col) for col in columns} for record in records]

        engine = self.get_engine(target.connection)
        try:
            with engine.begin() as connection:
                connection.execute(insert(target_table), rows)
        except SQLAlchemyError as e:
            logger.error(f"Columnar store load failed for {table_name}: {e}")
            raise ExecutionError(f"Columnar store load failed: {e}", stage="load") from e

        logger.info(f"Loaded {len(rows)} records into {table_name}")
        return len(rows)

    def close(self) -> None:
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
