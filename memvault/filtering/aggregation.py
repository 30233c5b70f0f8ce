"""Aggregations over filtered record selections."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

from memvault.errors import InvalidQueryError
from memvault.filtering.filters import ValueKind, as_utc, kind_of

AggregateValue = Union[int, float, None]


class AggregationFunction(str, Enum):
    """Supported aggregate functions."""

    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    DISTINCT = "distinct"


@dataclass(frozen=True)
class AggregationQuery:
    """Aggregate `field` with `function`, optionally per `group_by` value."""

    function: AggregationFunction
    field: str
    group_by: Optional[str] = None

    def grouped_by(self, field: str) -> "AggregationQuery":
        """Return a copy grouped by another field."""
        return AggregationQuery(self.function, self.field, field)

    def validate(self) -> None:
        if not isinstance(self.function, AggregationFunction):
            raise InvalidQueryError("Unknown aggregation function", self.field, self.function)
        if not self.field:
            raise InvalidQueryError("Aggregation needs a target field", operator=self.function)
        if self.group_by is not None and not self.group_by:
            raise InvalidQueryError("Empty group-by field", self.field, self.function)


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of an aggregation.

    `value` is a scalar for ungrouped queries, or a dict mapping each
    group-by value (None for records without the field) to a scalar.
    Group values that would collide as dict keys across kinds (True and 1)
    are keyed as (ValueKind, value) pairs instead.
    A scalar of None means the aggregate is undefined, e.g. the average of
    zero numeric values.
    """

    function: AggregationFunction
    field: str
    group_by: Optional[str]
    value: Union[AggregateValue, dict[Any, AggregateValue]]


def _plain(value: Any) -> Any:
    """Hashable form of a value, used as a group label."""
    kind = kind_of(value)
    if kind is ValueKind.LIST:
        return tuple(_plain(v) for v in value)
    if kind is ValueKind.TIMESTAMP:
        return as_utc(value)
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def _hashable(value: Any) -> tuple[ValueKind, Any]:
    """Bucket key tagged with the value kind.

    Python treats True == 1 == 1.0, but Bool and Number are different
    kinds and must not share a bucket.
    """
    kind = kind_of(value)
    if kind is ValueKind.LIST:
        return kind, tuple(_hashable(v) for v in value)
    return kind, _plain(value)


_MISSING = (None, None)


def _group_labels(keys: list[tuple[ValueKind, Any]], labels: dict[Any, Any]) -> dict[Any, Any]:
    """Map bucket keys to the labels callers see.

    A label is the first value seen for the bucket. Buckets whose labels
    compare equal across kinds (True and 1) keep the (kind, label) pair.
    """
    seen: dict[Any, int] = {}
    for key in keys:
        label = labels[key]
        seen[label] = seen.get(label, 0) + 1
    return {
        key: labels[key] if seen[labels[key]] == 1 else (key[0], labels[key])
        for key in keys
    }


def _numeric(fields: Mapping[str, Any], name: str) -> Optional[float]:
    value = fields.get(name)
    if kind_of(value) is not ValueKind.NUMBER:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def compute_bucket(function: AggregationFunction, field: str, rows: list[Mapping[str, Any]]) -> AggregateValue:
    """Apply one aggregate function to a single bucket of rows."""
    if function is AggregationFunction.COUNT:
        return len(rows)

    if function is AggregationFunction.DISTINCT:
        missing = object()
        seen = {_hashable(row[field]) if field in row else missing for row in rows}
        return len(seen)

    numbers = [n for n in (_numeric(row, field) for row in rows) if n is not None]
    if function is AggregationFunction.SUM:
        return float(math.fsum(numbers))
    if not numbers:
        return None
    if function is AggregationFunction.AVG:
        return math.fsum(numbers) / len(numbers)
    if function is AggregationFunction.MIN:
        return min(numbers)
    return max(numbers)


def aggregate(query: AggregationQuery, rows: Iterable[Mapping[str, Any]]) -> AggregationResult:
    """Aggregate already-filtered rows.

    Args:
        query: Aggregation to run.
        rows: Field mappings of the matching records.

    Returns:
        AggregationResult with a scalar or per-group values.
    """
    rows = list(rows)
    if query.group_by is None:
        value = compute_bucket(query.function, query.field, rows)
        return AggregationResult(query.function, query.field, None, value)

    buckets: dict[Any, list[Mapping[str, Any]]] = {}
    labels: dict[Any, Any] = {}
    for row in rows:
        if query.group_by in row:
            value = row[query.group_by]
            key = _hashable(value)
            labels.setdefault(key, _plain(value))
        else:
            key = _MISSING
            labels[key] = None
        buckets.setdefault(key, []).append(row)

    names = _group_labels(list(buckets), labels)
    grouped = {
        names[key]: compute_bucket(query.function, query.field, bucket)
        for key, bucket in buckets.items()
    }
    return AggregationResult(query.function, query.field, query.group_by, grouped)
