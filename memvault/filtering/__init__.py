"""Structured filtering and aggregation over memory metadata."""

from memvault.filtering.aggregation import (
    AggregationFunction,
    AggregationQuery,
    AggregationResult,
    aggregate,
)
from memvault.filtering.filters import (
    FilterCondition,
    FilterOperator,
    FilterQuery,
    FilterValue,
    LogicalOperator,
    ValueKind,
    kind_of,
)
from memvault.filtering.query import (
    FilterEngine,
    Query,
    QueryBuilder,
    QueryResult,
    TimeFilter,
)

__all__ = [
    # Filters
    "FilterCondition",
    "FilterOperator",
    "FilterQuery",
    "FilterValue",
    "LogicalOperator",
    "ValueKind",
    "kind_of",
    # Aggregation
    "AggregationFunction",
    "AggregationQuery",
    "AggregationResult",
    "aggregate",
    # Queries
    "FilterEngine",
    "Query",
    "QueryBuilder",
    "QueryResult",
    "TimeFilter",
]
