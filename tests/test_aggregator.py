import pytest

from aggregation_engine.schemas.job_schemas import FilterRule, Operation, Transformation
from aggregation_engine.transformers.aggregator import (
    calculate_aggregation,
    compare_values,
    matches_filter,
    to_aggregate_number,
    to_number,
    transform,
)


def _transformation(**data) -> Transformation:
    return Transformation.model_validate(data)


def test_group_by_sums_per_group():
    records = [{"t": "a", "v": 1}, {"t": "a", "v": 3}, {"t": "b", "v": 5}]
    rows = transform(records, _transformation(operations=[{"type": "sum", "field": "v", "alias": "s"}], groupBy=["t"]))

    assert sorted(rows, key=lambda row: row["t"]) == [{"t": "a", "s": 4}, {"t": "b", "s": 5}]


def test_without_group_by_returns_single_row():
    records = [{"v": 1}, {"v": 2}, {"v": None}]
    rows = transform(records, _transformation(operations=[
        {"type": "count", "field": "*", "alias": "rows"},
        {"type": "count", "field": "v", "alias": "values"},
        {"type": "avg", "field": "v", "alias": "mean"},
    ]))

    assert rows == [{"rows": 3, "values": 2, "mean": 1.5}]


def test_empty_input_produces_no_rows():
    assert transform([], _transformation(operations=[{"type": "count"}])) == []


def test_default_alias_is_type_and_field():
    rows = transform([{"v": 2}], _transformation(operations=[{"type": "max", "field": "v"}]))
    assert rows == [{"max_v": 2}]


@pytest.mark.parametrize("values, expected", [([1, 2, 3, 4], 2.5), ([1, 2, 3], 2)])
def test_median(values, expected):
    records = [{"v": value} for value in values]
    assert calculate_aggregation(records, Operation(type="median", field="v")) == expected


def test_percentile_uses_nearest_rank():
    records = [{"v": value} for value in [50, 10, 40, 20, 30]]
    operation = Operation(type="percentile", field="v", params={"percentile": 80})
    assert calculate_aggregation(records, operation) == 40


def test_percentile_defaults_to_95():
    records = [{"v": value} for value in range(1, 11)]
    assert calculate_aggregation(records, Operation(type="percentile", field="v")) == 10


def test_min_max_without_numeric_values_are_none():
    records = [{"v": None}, {"v": "n/a"}]
    assert calculate_aggregation(records, Operation(type="min", field="v")) is None
    assert calculate_aggregation(records, Operation(type="max", field="v")) is None


def test_sum_treats_non_numeric_as_zero():
    records = [{"v": "3"}, {"v": "x"}, {"v": 2.5}]
    assert calculate_aggregation(records, Operation(type="sum", field="v")) == 5.5


def test_aggregates_read_leading_number_of_dirty_strings():
    records = [{"v": "12abc"}, {"v": " 3.5 kg"}, {"v": "n/a"}, {"v": 4}]
    assert calculate_aggregation(records, Operation(type="sum", field="v")) == 19.5
    assert calculate_aggregation(records, Operation(type="avg", field="v")) == pytest.approx(19.5 / 4)
    assert calculate_aggregation(records, Operation(type="max", field="v")) == 12
    assert to_aggregate_number("1e3x") == 1000.0
    assert to_aggregate_number(".5") == 0.5
    assert to_aggregate_number("abc") is None
    assert to_number("12abc") is None


def test_stddev_and_variance_are_population_statistics():
    records = [{"v": value} for value in [2, 4, 4, 4, 5, 5, 7, 9]]
    assert calculate_aggregation(records, Operation(type="stddev", field="v")) == pytest.approx(2.0)
    assert calculate_aggregation(records, Operation(type="variance", field="v")) == pytest.approx(4.0)


def test_first_and_last_value_skip_nulls():
    records = [{"v": None}, {"v": "a"}, {"v": "b"}, {"v": None}]
    assert calculate_aggregation(records, Operation(type="first_value", field="v")) == "a"
    assert calculate_aggregation(records, Operation(type="last_value", field="v")) == "b"


def test_unsupported_operation_yields_none():
    assert calculate_aggregation([{"v": 1}], Operation(type="mode", field="v")) is None


def test_operation_condition_filters_rows_first():
    records = [{"kind": "import", "v": 1}, {"kind": "export", "v": 10}, {"kind": "import", "v": 2}]
    operation = Operation(type="sum", field="v", condition={"field": "kind", "operator": "eq", "value": "import"})
    assert calculate_aggregation(records, operation) == 3


def test_having_excludes_rows_before_ordering_and_limit():
    records = [{"t": t, "v": v} for t, v in [("a", 1), ("b", 5), ("c", 7), ("d", 2)]]
    rows = transform(records, _transformation(
        operations=[{"type": "sum", "field": "v", "alias": "s"}],
        groupBy=["t"],
        having=[{"field": "s", "operator": "gte", "value": 3}],
        orderBy=[{"field": "s", "direction": "DESC"}],
        limit=1,
    ))

    assert rows == [{"t": "c", "s": 7}]


def test_limit_and_offset_select_middle_rows():
    records = [{"t": str(i), "v": i} for i in range(1, 6)]
    rows = transform(records, _transformation(
        operations=[{"type": "sum", "field": "v", "alias": "s"}],
        groupBy=["t"],
        orderBy=[{"field": "s", "direction": "ASC"}],
        limit=2,
        offset=1,
    ))

    assert [row["s"] for row in rows] == [2, 3]


def test_multi_key_sort_is_stable_and_none_first():
    records = [
        {"g": "x", "k": 2, "v": 1},
        {"g": "y", "k": None, "v": 1},
        {"g": "z", "k": 1, "v": 1},
        {"g": "w", "k": 2, "v": 1},
    ]
    rows = transform(records, _transformation(
        operations=[{"type": "count", "alias": "n"}],
        groupBy=["g", "k"],
        orderBy=[{"field": "k"}],
    ))

    assert [row["g"] for row in rows] == ["y", "z", "x", "w"]


def test_group_key_merges_equal_string_forms():
    records = [{"t": 1, "v": 1}, {"t": "1", "v": 2}]
    rows = transform(records, _transformation(operations=[{"type": "sum", "field": "v", "alias": "s"}], groupBy=["t"]))
    assert rows == [{"t": 1, "s": 3}]


def test_matches_filter_operators():
    row = {"v": 5, "name": "north terminal"}
    assert matches_filter(row, FilterRule(field="v", operator="gt", value=4))
    assert not matches_filter(row, FilterRule(field="v", operator="lt", value=5))
    assert matches_filter(row, FilterRule(field="v", operator="in", value=[1, 5]))
    assert matches_filter(row, FilterRule(field="v", operator="not_in", value=[1, 2]))
    assert matches_filter(row, FilterRule(field="name", operator="like", value="term"))
    assert not matches_filter(row, FilterRule(field="name", operator="like", value="Term"))
    assert not matches_filter({"v": None}, FilterRule(field="v", operator="gte", value=0))


def test_value_helpers():
    assert to_number("12") == 12
    assert to_number("1.5") == 1.5
    assert to_number(True) is None
    assert compare_values(None, 0) == -1
    assert compare_values("10", 9) == 1
    assert compare_values("10", "9") == -1
