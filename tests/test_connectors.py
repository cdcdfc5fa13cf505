import pytest

from aggregation_engine.core.config import ColumnarStoreSettings
from aggregation_engine.core.enums import ConnectorKind
from aggregation_engine.core.exceptions import UnsupportedOperationError, ValidationException
from aggregation_engine.infrastructure.connectors.columnar_store import ColumnarStoreConnector, build_extraction_query
from aggregation_engine.infrastructure.connectors.factory import ConnectorRegistry, create_default_registry
from aggregation_engine.schemas.job_schemas import SourceConfig, TargetConfig

OPERATIONS = [
    {"id": 1, "terminal": "north", "teu_count": 4, "updated_at": 100},
    {"id": 2, "terminal": "south", "teu_count": 2, "updated_at": 200},
    {"id": 3, "terminal": "north", "teu_count": 6, "updated_at": 300},
    {"id": 4, "terminal": "east", "teu_count": 1, "updated_at": 400},
]


@pytest.fixture
def connector(engine):
    return ColumnarStoreConnector(settings=ColumnarStoreSettings(url="sqlite://"), engine=engine)


def _source(**data) -> SourceConfig:
    return SourceConfig.model_validate({"kind": "columnar_store", **data})


def test_query_binds_filters_incremental_value_and_parameters():
    source = _source(
        query="SELECT * FROM operations WHERE terminal = {{terminal}}",
        filters=[
            {"field": "teu_count", "operator": "gt", "value": 1, "condition": "OR"},
            {"field": "id", "operator": "in", "value": [1, 2]},
        ],
        incremental=True,
        incrementalField="updated_at",
    )
    query = build_extraction_query(source, {"terminal": "north"}, last_processed_value=150)

    assert query.sql == (
        "SELECT * FROM (SELECT * FROM operations WHERE terminal = :param_terminal) AS _source"
        " WHERE (teu_count > :filter_0 OR id IN :filter_1)"
        " AND updated_at > :last_processed_value"
    )
    assert query.params == {
        "filter_0": 1,
        "filter_1": [1, 2],
        "last_processed_value": 150,
        "param_terminal": "north",
    }
    assert query.expanding == {"filter_1"}


def test_table_source_starts_a_where_clause():
    query = build_extraction_query(_source(table="operations", filters=[{"field": "terminal", "operator": "like", "value": "or"}]))
    assert query.sql == "SELECT * FROM operations WHERE (terminal LIKE :filter_0)"
    assert query.params == {"filter_0": "%or%"}


def test_incremental_clause_skipped_without_watermark():
    query = build_extraction_query(_source(table="operations", incremental=True, incrementalField="updated_at"))
    assert query.sql == "SELECT * FROM operations"


@pytest.mark.parametrize("table", ["operations; DROP TABLE x", "1table", "ops-2024"])
def test_invalid_table_identifier_rejected(table):
    with pytest.raises(ValidationException):
        build_extraction_query(_source(table=table))


def test_missing_placeholder_value_rejected():
    with pytest.raises(ValidationException, match="terminal"):
        build_extraction_query(_source(query="SELECT * FROM operations WHERE terminal = {{terminal}}"), {})


def test_user_query_without_conditions_is_left_untouched():
    query = build_extraction_query(_source(query="SELECT terminal FROM operations ORDER BY terminal;"))
    assert query.sql == "SELECT terminal FROM operations ORDER BY terminal"


def test_quoted_placeholder_becomes_a_single_bind():
    query = build_extraction_query(
        _source(query="SELECT * FROM operations WHERE terminal = '{{ terminal }}'"), {"terminal": "north"}
    )
    assert query.sql == "SELECT * FROM operations WHERE terminal = :param_terminal"
    assert query.params == {"param_terminal": "north"}


def test_placeholder_inside_string_literal_rejected():
    source = _source(query="SELECT * FROM operations WHERE terminal LIKE '%{{terminal}}%'")
    with pytest.raises(ValidationException, match="string literal"):
        build_extraction_query(source, {"terminal": "north"})


def test_extract_applies_filters_and_watermark(connector, insert_operations):
    insert_operations(OPERATIONS)
    source = _source(
        table="operations",
        filters=[{"field": "terminal", "operator": "in", "value": ["north", "east"]}],
        incremental=True,
        incrementalField="updated_at",
    )

    records = connector.extract(source, {}, last_processed_value=100)

    assert sorted(record["id"] for record in records) == [3, 4]


def test_extract_in_batches(connector, insert_operations):
    insert_operations(OPERATIONS)
    records = connector.extract(_source(table="operations", batchSize=3))
    assert len(records) == 4


def test_parameter_values_are_bound_not_spliced(connector, insert_operations):
    insert_operations(OPERATIONS)
    source = _source(query="SELECT id FROM operations WHERE terminal = {{terminal}}")

    assert connector.extract(source, {"terminal": "north' OR '1'='1"}) == []
    assert [row["id"] for row in connector.extract(source, {"terminal": "south"})] == [2]


def test_load_inserts_rows(connector, fetch_rows):
    inserted = connector.load(
        TargetConfig(table="aggregated_data"),
        [{"terminal": "north", "total_teu": 10}, {"terminal": "south", "total_teu": 2}],
    )

    assert inserted == 2
    assert fetch_rows("SELECT terminal, total_teu FROM aggregated_data ORDER BY terminal") == [
        {"terminal": "north", "total_teu": 10},
        {"terminal": "south", "total_teu": 2},
    ]


def test_load_without_records_is_noop(connector):
    assert connector.load(TargetConfig(table="aggregated_data"), []) == 0


def test_registry_rejects_unregistered_kind():
    registry = ConnectorRegistry()
    with pytest.raises(UnsupportedOperationError):
        registry.get(ConnectorKind.HTTP_API)


@pytest.mark.parametrize("kind", [kind for kind in ConnectorKind if kind != ConnectorKind.COLUMNAR_STORE])
def test_default_registry_placeholders_fail_fast(engine, kind):
    registry = create_default_registry(ColumnarStoreSettings(url="sqlite://"), engine=engine)
    connector = registry.get(kind)

    with pytest.raises(UnsupportedOperationError) as exc_info:
        connector.extract(SourceConfig(kind=kind))
    assert exc_info.value.kind == kind.value

    with pytest.raises(UnsupportedOperationError):
        connector.load(TargetConfig(kind=kind), [{"a": 1}])


def test_watermark_constrains_every_branch_of_user_query(connector, insert_operations):
    insert_operations(OPERATIONS)
    source = _source(
        query="SELECT * FROM operations WHERE terminal = 'north' OR terminal = 'south'",
        incremental=True,
        incrementalField="updated_at",
    )

    assert connector.extract(source, {}, last_processed_value=300) == []
    assert sorted(row["id"] for row in connector.extract(source, {}, last_processed_value=150)) == [2, 3]


def test_filters_apply_to_grouped_user_query(connector, insert_operations):
    insert_operations(OPERATIONS)
    source = _source(
        query="SELECT terminal, SUM(teu_count) AS teu FROM operations GROUP BY terminal ORDER BY terminal",
        filters=[{"field": "teu", "operator": "gte", "value": 2}],
    )

    records = sorted(connector.extract(source), key=lambda row: row["terminal"])
    assert records == [{"terminal": "north", "teu": 10}, {"terminal": "south", "teu": 2}]


def test_quoted_placeholder_extracts_matching_rows(connector, insert_operations):
    insert_operations(OPERATIONS)
    source = _source(query="SELECT id FROM operations WHERE terminal = '{{terminal}}' ORDER BY id")

    assert [row["id"] for row in connector.extract(source, {"terminal": "north"})] == [1, 3]
