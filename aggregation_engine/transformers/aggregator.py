# ==============================================
# aggregation_engine/transformers/aggregator.py
# ==============================================
"""
In-memory aggregation engine.

Implements the closed transformation language attached to every job:
group-by, aggregate operations, having filters, multi-key ordering and
limit/offset pagination over a list of dict records.
"""
import math
import re
from decimal import Decimal
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from aggregation_engine.core.enums import FilterOperator, OperationType, SortDirection
from aggregation_engine.schemas.job_schemas import FilterRule, Operation, OrderBy, Transformation
from aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

Record = Dict[str, Any]

GROUP_KEY_SEPARATOR = "|"
DEFAULT_PERCENTILE = 95
NUMERIC_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(value: Any) -> Optional[float]:
    """Parse a value as a number, returning None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
        return None if math.isnan(number) else number
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def to_aggregate_number(value: Any) -> Optional[float]:
    """Numeric reading used by aggregates. Strings count by their leading number, so "12abc" is 12."""
    if isinstance(value, str):
        match = NUMERIC_PREFIX.match(value.strip())
        if match is None:
            return None
        value = match.group(0)
    return to_number(value)


def _numeric_values(records: Sequence[Record], field: str) -> List[float]:
    values = []
    for row in records:
        number = to_aggregate_number(row.get(field))
        if number is not None:
            values.append(number)
    return values


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison tolerant of None and mixed types. None sorts first."""
    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1

    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None and not (
        isinstance(left, str) and isinstance(right, str)
    ):
        left, right = left_number, right_number

    try:
        if left < right:
            return -1
        if left > right:
            return 1
        return 0
    except TypeError:
        left, right = str(left), str(right)
        return -1 if left < right else (1 if left > right else 0)


def _loose_equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    left_number, right_number = to_number(left), to_number(right)
    return left_number is not None and left_number == right_number


def matches_filter(row: Record, rule: FilterRule) -> bool:
    """Evaluate a single filter rule against a row."""
    value = row.get(rule.field)
    expected = rule.value
    operator = rule.operator

    if operator == FilterOperator.EQ:
        return _loose_equals(value, expected)
    if operator == FilterOperator.NE:
        return not _loose_equals(value, expected)
    if operator == FilterOperator.IN:
        return isinstance(expected, (list, tuple, set)) and any(_loose_equals(value, item) for item in expected)
    if operator == FilterOperator.NOT_IN:
        return isinstance(expected, (list, tuple, set)) and not any(_loose_equals(value, item) for item in expected)
    if operator == FilterOperator.LIKE:
        return value is not None and expected is not None and str(expected) in str(value)

    if value is None or expected is None:
        return False
    comparison = compare_values(value, expected)
    if operator == FilterOperator.GT:
        return comparison > 0
    if operator == FilterOperator.GTE:
        return comparison >= 0
    if operator == FilterOperator.LT:
        return comparison < 0
    if operator == FilterOperator.LTE:
        return comparison <= 0
    return True


# Aggregate functions: (rows, operation) -> value

def _count(rows: Sequence[Record], operation: Operation) -> int:
    if operation.field == "*":
        return len(rows)
    return sum(1 for row in rows if row.get(operation.field) is not None)


def _sum(rows: Sequence[Record], operation: Operation) -> float:
    total = 0
    for row in rows:
        number = to_aggregate_number(row.get(operation.field))
        total += number if number is not None else 0
    return total


def _avg(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    present = [row for row in rows if row.get(operation.field) is not None]
    if not present:
        return None
    return _sum(present, operation) / len(present)


def _min(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = _numeric_values(rows, operation.field)
    return min(values) if values else None


def _max(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = _numeric_values(rows, operation.field)
    return max(values) if values else None


def _median(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = sorted(_numeric_values(rows, operation.field))
    if not values:
        return None
    middle = len(values) // 2
    if len(values) % 2 == 0:
        return (values[middle - 1] + values[middle]) / 2
    return values[middle]


def _percentile(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = sorted(_numeric_values(rows, operation.field))
    if not values:
        return None
    percentile = to_number(operation.params.get("percentile"))
    if percentile is None:
        percentile = DEFAULT_PERCENTILE
    index = math.ceil(percentile / 100 * len(values)) - 1
    index = max(0, min(index, len(values) - 1))
    return values[index]


def _stddev(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = _numeric_values(rows, operation.field)
    return float(np.std(values)) if values else None


def _variance(rows: Sequence[Record], operation: Operation) -> Optional[float]:
    values = _numeric_values(rows, operation.field)
    return float(np.var(values)) if values else None


def _first_value(rows: Sequence[Record], operation: Operation) -> Any:
    for row in rows:
        if row.get(operation.field) is not None:
            return row[operation.field]
    return None


def _last_value(rows: Sequence[Record], operation: Operation) -> Any:
    for row in reversed(rows):
        if row.get(operation.field) is not None:
            return row[operation.field]
    return None


AGGREGATE_FUNCTIONS: Dict[str, Callable[[Sequence[Record], Operation], Any]] = {
    OperationType.COUNT.value: _count,
    OperationType.SUM.value: _sum,
    OperationType.AVG.value: _avg,
    OperationType.MIN.value: _min,
    OperationType.MAX.value: _max,
    OperationType.MEDIAN.value: _median,
    OperationType.PERCENTILE.value: _percentile,
    OperationType.STDDEV.value: _stddev,
    OperationType.VARIANCE.value: _variance,
    OperationType.FIRST_VALUE.value: _first_value,
    OperationType.LAST_VALUE.value: _last_value,
}


def calculate_aggregation(rows: Sequence[Record], operation: Operation) -> Any:
    """Compute one operation over a set of rows; unsupported types yield None."""
    function = AGGREGATE_FUNCTIONS.get(operation.type.lower())
    if function is None:
        logger.warning(f"Unsupported aggregation operation: {operation.type}")
        return None

    if operation.condition is not None:
        rows = [row for row in rows if matches_filter(row, operation.condition)]

    return function(rows, operation)


def group_records(records: Sequence[Record], group_by: Sequence[str]) -> Dict[str, List[Record]]:
    """Partition records by the pipe-joined string of their group-by values."""
    groups: Dict[str, List[Record]] = {}
    for row in records:
        key = GROUP_KEY_SEPARATOR.join(
            "" if row.get(field) is None else str(row.get(field)) for field in group_by
        )
        groups.setdefault(key, []).append(row)
    return groups


def sort_rows(rows: List[Record], order_by: Sequence[OrderBy]) -> List[Record]:
    """Stable multi-key sort; the first key is primary."""
    if not order_by:
        return rows

    def _compare(left: Record, right: Record) -> int:
        for order in order_by:
            comparison = compare_values(left.get(order.field), right.get(order.field))
            if comparison != 0:
                return -comparison if order.direction == SortDirection.DESC else comparison
        return 0

    return sorted(rows, key=cmp_to_key(_compare))


class Aggregator:
    """
    Applies a Transformation to a record set.

    Grouping is keyed by string form, so the values 1 and "1" fall in the
    same group. Output rows carry the group-by values of the first record
    in each group.
    """

    def __init__(self, transformation: Transformation):
        self.transformation = transformation

    def _aggregate_row(self, rows: Sequence[Record]) -> Record:
        return {
            operation.output_name: calculate_aggregation(rows, operation)
            for operation in self.transformation.operations
        }

    def aggregate(self, records: Sequence[Record]) -> List[Record]:
        group_by = self.transformation.group_by
        if not group_by:
            return [self._aggregate_row(records)]

        result = []
        for group_rows in group_records(records, group_by).values():
            row = {field: group_rows[0].get(field) for field in group_by}
            row.update(self._aggregate_row(group_rows))
            result.append(row)
        return result

    def apply(self, records: Sequence[Record]) -> List[Record]:
        if not records:
            return []

        rows = self.aggregate(records)

        having = self.transformation.having
        if having:
            rows = [row for row in rows if all(matches_filter(row, rule) for rule in having)]

        rows = sort_rows(rows, self.transformation.order_by)

        start = self.transformation.offset or 0
        end = start + self.transformation.limit if self.transformation.limit is not None else None
        return rows[start:end]


def transform(records: Sequence[Record], transformation: Transformation) -> List[Record]:
    """Run the aggregation pipeline over ``records``."""
    return Aggregator(transformation).apply(records)
